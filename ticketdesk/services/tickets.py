"""
Tickets service (бізнес-правила для заявок)

Життєвий цикл open -> in progress -> closed. Переходи не обмежені напрямком:
статус змінюється лише явним записом поля status, якщо його дозволяє policy.
Роутери викликають ці функції, самі рішень про доступ не приймають.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from ticketdesk.db.models import (
    Comment,
    Ticket,
    TicketStatusEnum as Status,
    User,
    utcnow,
)
from ticketdesk.schemas.tickets import TicketCreate, TicketFilters, TicketUpdate
from ticketdesk.services.policy import Operation, can_read, decide, visible_filter

log = logging.getLogger(__name__)


def _with_people(stmt):
    return stmt.options(joinedload(Ticket.creator), joinedload(Ticket.assignee))


async def load_ticket(db: AsyncSession, ticket_id: int) -> Optional[Ticket]:
    stmt = _with_people(select(Ticket).where(Ticket.id == ticket_id))
    # populate_existing: після update у тій самій сесії підтягуємо свіжі creator/assignee
    res = await db.execute(stmt.execution_options(populate_existing=True))
    return res.scalar_one_or_none()


async def get_ticket_for(
    db: AsyncSession,
    settings: Settings,
    actor: User,
    ticket_id: int,
    operation: Operation = Operation.read,
) -> Ticket:
    """
    Тікет для read/comment: 404 якщо немає, 403 якщо не видно.
    З hide_forbidden_tickets невидимий тікет теж віддає 404.
    """
    t = await load_ticket(db, ticket_id)
    if not t:
        raise NotFoundError("Ticket not found")
    decision = decide(actor.role, actor.id, t, operation)
    if not decision.allow:
        if settings.hide_forbidden_tickets:
            raise NotFoundError("Ticket not found")
        raise AuthorizationError(decision.reason)
    return t


async def _load_for_write(db: AsyncSession, settings: Settings, actor: User, ticket_id: int) -> Ticket:
    t = await load_ticket(db, ticket_id)
    if not t:
        raise NotFoundError("Ticket not found")
    if settings.hide_forbidden_tickets and not can_read(actor.role, actor.id, t):
        raise NotFoundError("Ticket not found")
    return t


async def create_ticket(db: AsyncSession, actor: User, payload: TicketCreate) -> Ticket:
    decision = decide(actor.role, actor.id, None, Operation.create)
    if not decision.allow:
        raise AuthorizationError(decision.reason)
    t = Ticket(
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        status=Status.open,
        creator_id=actor.id,
        assignee_id=None,
    )
    db.add(t)
    await db.commit()
    log.info("ticket_created", extra={"ticket_id": t.id, "creator_id": actor.id})
    return await load_ticket(db, t.id)


async def list_tickets(db: AsyncSession, actor: User, filters: TicketFilters) -> Sequence[Ticket]:
    q = _with_people(select(Ticket)).where(visible_filter(actor.role, actor.id))
    if filters.status:
        q = q.where(Ticket.status == filters.status)
    if filters.priority:
        q = q.where(Ticket.priority == filters.priority)
    if filters.assigned_to is not None:
        q = q.where(Ticket.assignee_id == filters.assigned_to)
    if filters.created_by is not None:
        q = q.where(Ticket.creator_id == filters.created_by)

    q = q.order_by(Ticket.created_at.desc(), Ticket.id.desc())
    rows = (await db.execute(q)).scalars().all()
    return rows


async def update_ticket(
    db: AsyncSession,
    settings: Settings,
    actor: User,
    ticket_id: int,
    payload: TicketUpdate,
    *,
    expected_version: Optional[int] = None,
) -> Ticket:
    t = await _load_for_write(db, settings, actor, ticket_id)

    changes = payload.changes()
    decision = decide(actor.role, actor.id, t, Operation.update, changes.keys())
    if not decision.allow:
        raise AuthorizationError(decision.reason)

    # опційний If-Match; без нього — last writer wins
    if expected_version is not None and expected_version != t.version:
        raise ConflictError("Ticket was modified by someone else; reload and retry")

    if changes.get("assigned_to") is not None:
        if await db.get(User, changes["assigned_to"]) is None:
            raise ValidationError("Assignee does not exist", field="assigned_to")

    old_status = t.status
    values = {("assignee_id" if name == "assigned_to" else name): value for name, value in changes.items()}
    values.update(updated_at=utcnow(), version=Ticket.version + 1)

    stmt = update(Ticket).where(Ticket.id == t.id)
    if expected_version is not None:
        # версію перевіряє сам UPDATE: запис, що проскочив між load і commit, дає 0 рядків
        stmt = stmt.where(Ticket.version == expected_version)
    res = await db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    if res.rowcount == 0:
        await db.rollback()
        if expected_version is not None:
            raise ConflictError("Ticket was modified by someone else; reload and retry")
        raise NotFoundError("Ticket not found")
    await db.commit()

    log.info(
        "ticket_updated",
        extra={"ticket_id": t.id, "actor_id": actor.id, "fields": sorted(changes)},
    )
    if "status" in changes and changes["status"] != old_status:
        log.info(
            "status_changed",
            extra={
                "ticket_id": t.id,
                "from": getattr(old_status, "value", old_status),
                "to": getattr(changes["status"], "value", changes["status"]),
            },
        )
    return await load_ticket(db, t.id)


async def delete_ticket(db: AsyncSession, settings: Settings, actor: User, ticket_id: int) -> None:
    t = await _load_for_write(db, settings, actor, ticket_id)

    decision = decide(actor.role, actor.id, t, Operation.delete)
    if not decision.allow:
        raise AuthorizationError(decision.reason)

    # коментарі видаляємо разом із тікетом
    await db.execute(delete(Comment).where(Comment.ticket_id == t.id))
    await db.delete(t)
    await db.commit()
    log.info("ticket_deleted", extra={"ticket_id": ticket_id, "actor_id": actor.id})
