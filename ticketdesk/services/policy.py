"""
Authorization policy for tickets.

Одна декларативна таблиця POLICY: для кожної ролі описано, які тікети вона
бачить, які поля може змінювати і що може видаляти. decide() — чиста функція
над цією таблицею; visible_filter() будує з тих самих правил SQL-умову для
списку тікетів, тож фільтр і перевірка окремого тікета не розходяться.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional, Protocol

from sqlalchemy import ColumnElement, false, or_, true

from ticketdesk.db.models import RoleEnum as Role, Ticket, TicketStatusEnum as Status


class Operation(str, enum.Enum):
    read = "read"
    create = "create"
    update = "update"
    delete = "delete"
    comment = "comment"


class Scope(str, enum.Enum):
    """Ознака, за якою тікет потрапляє в зону дії ролі."""
    all = "all"
    created_by_self = "created_by_self"
    assigned_to_self = "assigned_to_self"
    unassigned = "unassigned"


class TicketLike(Protocol):
    creator_id: int
    assignee_id: Optional[int]
    status: Status


@dataclass(frozen=True)
class TicketFacts:
    creator_id: int
    assignee_id: Optional[int] = None
    status: Status = Status.open


TICKET_FIELDS = frozenset({"title", "description", "status", "priority", "assigned_to"})
CREATE_FIELDS = frozenset({"title", "description", "priority"})


@dataclass(frozen=True)
class Decision:
    allow: bool
    mutable_fields: frozenset = frozenset()
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allow


# ==== Scope checks (python) та їх SQL-еквіваленти ====

_SCOPE_CHECKS: dict[Scope, Callable[[int, TicketLike], bool]] = {
    Scope.all: lambda actor_id, t: True,
    Scope.created_by_self: lambda actor_id, t: t.creator_id == actor_id,
    Scope.assigned_to_self: lambda actor_id, t: t.assignee_id is not None and t.assignee_id == actor_id,
    Scope.unassigned: lambda actor_id, t: t.assignee_id is None,
}

_SCOPE_CLAUSES: dict[Scope, Callable[[int], ColumnElement[bool]]] = {
    Scope.all: lambda actor_id: true(),
    Scope.created_by_self: lambda actor_id: Ticket.creator_id == actor_id,
    Scope.assigned_to_self: lambda actor_id: Ticket.assignee_id == actor_id,
    Scope.unassigned: lambda actor_id: Ticket.assignee_id.is_(None),
}


def _in_scope(scopes: Iterable[Scope], actor_id: int, ticket: TicketLike) -> bool:
    return any(_SCOPE_CHECKS[s](actor_id, ticket) for s in scopes)


# ==== Правила редагування по ролях ====

def _admin_fields(actor_id: int, t: TicketLike) -> frozenset:
    return TICKET_FIELDS


def _agent_fields(actor_id: int, t: TicketLike) -> frozenset:
    fields: set[str] = set()
    # чужий тікет (призначений іншому агенту) не чіпаємо
    if t.assignee_id is None or t.assignee_id == actor_id:
        fields |= {"status", "priority", "assigned_to"}
    if t.creator_id == actor_id:
        fields |= {"title", "description"}
    return frozenset(fields)


def _user_fields(actor_id: int, t: TicketLike) -> frozenset:
    if t.creator_id != actor_id:
        return frozenset()
    if t.status != Status.open and t.assignee_id != actor_id:
        return frozenset()
    return frozenset({"title", "description", "priority"})


@dataclass(frozen=True)
class RolePolicy:
    read_scopes: tuple[Scope, ...]
    delete_scopes: tuple[Scope, ...]
    update_fields: Callable[[int, TicketLike], frozenset]
    # повідомлення, коли роль не має жодних прав на update цього тікета
    locked_reason: str
    # повідомлення для конкретних заборонених полів
    field_reasons: Mapping[str, str] = field(default_factory=dict)


POLICY: dict[Role, RolePolicy] = {
    Role.admin: RolePolicy(
        read_scopes=(Scope.all,),
        delete_scopes=(Scope.all,),
        update_fields=_admin_fields,
        locked_reason="Admin not authorized to update this ticket",
    ),
    Role.agent: RolePolicy(
        read_scopes=(Scope.assigned_to_self, Scope.unassigned, Scope.created_by_self),
        delete_scopes=(Scope.created_by_self,),
        update_fields=_agent_fields,
        locked_reason="Agent not authorized to update this ticket",
        field_reasons={
            "assigned_to": "Agent can only re-assign their own tickets or unassigned tickets.",
            "status": "Agent can only update their own tickets or unassigned tickets.",
            "priority": "Agent can only update their own tickets or unassigned tickets.",
            "title": "Only the ticket creator can edit title or description.",
            "description": "Only the ticket creator can edit title or description.",
        },
    ),
    Role.user: RolePolicy(
        read_scopes=(Scope.created_by_self, Scope.assigned_to_self),
        delete_scopes=(Scope.created_by_self,),
        update_fields=_user_fields,
        locked_reason="User not authorized to update this ticket",
        field_reasons={
            "status": "User cannot change status or assignment.",
            "assigned_to": "User cannot change status or assignment.",
        },
    ),
}


def _role(actor_role) -> Optional[Role]:
    try:
        return Role(getattr(actor_role, "value", actor_role))
    except ValueError:
        return None


def _user_locked_reason(actor_id: int, t: TicketLike) -> str:
    if t.creator_id == actor_id:
        return "Cannot update ticket that is in progress or closed, unless you are the assignee."
    return POLICY[Role.user].locked_reason


def decide(
    actor_role,
    actor_id: int,
    ticket: Optional[TicketLike],
    operation: Operation,
    proposed_fields: Iterable[str] = (),
) -> Decision:
    """
    Головна точка рішення.

    Повертає Decision(allow, mutable_fields, reason). Для update дозволено лише
    коли в ролі є хоч одне редаговане поле і всі запропоновані поля в ньому.
    """
    role = _role(actor_role)
    if role is None:
        return Decision(False, reason="Unknown role")
    rp = POLICY[role]
    op = Operation(operation)

    if op is Operation.create:
        return Decision(True, CREATE_FIELDS)

    if ticket is None:
        raise ValueError(f"ticket is required for '{op.value}'")

    if op is Operation.read:
        if _in_scope(rp.read_scopes, actor_id, ticket):
            return Decision(True)
        return Decision(False, reason="User not authorized to view this ticket")

    if op is Operation.comment:
        if _in_scope(rp.read_scopes, actor_id, ticket):
            return Decision(True)
        return Decision(False, reason="User not authorized to comment on this ticket")

    if op is Operation.delete:
        if _in_scope(rp.delete_scopes, actor_id, ticket):
            return Decision(True)
        return Decision(False, reason="User not authorized to delete this ticket")

    # update
    mutable = rp.update_fields(actor_id, ticket)
    proposed = frozenset(proposed_fields)
    unknown = proposed - TICKET_FIELDS
    if unknown:
        return Decision(False, mutable, f"Unknown fields: {', '.join(sorted(unknown))}")
    if not mutable:
        reason = _user_locked_reason(actor_id, ticket) if role is Role.user else rp.locked_reason
        return Decision(False, mutable, reason)
    denied = proposed - mutable
    if denied:
        first = sorted(denied)[0]
        reason = rp.field_reasons.get(first, f"Not allowed to change: {', '.join(sorted(denied))}")
        return Decision(False, mutable, reason)
    return Decision(True, mutable)


def can_read(actor_role, actor_id: int, ticket: TicketLike) -> bool:
    return decide(actor_role, actor_id, ticket, Operation.read).allow


def visible_filter(actor_role, actor_id: int) -> ColumnElement[bool]:
    """SQL-умова для списку: ті самі read_scopes, що й у decide(read)."""
    role = _role(actor_role)
    if role is None:
        return false()
    clauses = [_SCOPE_CLAUSES[s](actor_id) for s in POLICY[role].read_scopes]
    return clauses[0] if len(clauses) == 1 else or_(*clauses)


def can_manage_users(actor_role) -> bool:
    return _role(actor_role) is Role.admin
