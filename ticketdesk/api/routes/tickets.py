# ticketdesk/api/routes/tickets.py
from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Header, Query, status

from ticketdesk.api.deps import CurrentUser, DBDep, SettingsDep
from ticketdesk.core.errors import ValidationError
from ticketdesk.db.models import PriorityEnum as Priority, TicketStatusEnum as Status
from ticketdesk.schemas.tickets import TicketCreate, TicketFilters, TicketOut, TicketUpdate
from ticketdesk.services import tickets as svc

router = APIRouter()


def _parse_if_match(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    # приймаємо і 3, і "3", і W/"3"
    raw = value.strip().removeprefix("W/").strip('"')
    try:
        return int(raw)
    except ValueError:
        raise ValidationError("If-Match must be a ticket version number", field="If-Match")


@router.post("", response_model=TicketOut, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreate, db: DBDep, current: CurrentUser):
    return await svc.create_ticket(db, current, payload)


@router.get("", response_model=list[TicketOut])
async def list_tickets(
    db: DBDep,
    current: CurrentUser,
    status_: Annotated[Optional[Status], Query(alias="status")] = None,
    priority: Optional[Priority] = None,
    assigned_to: Annotated[Optional[int], Query(alias="assignedTo")] = None,
    created_by: Annotated[Optional[int], Query(alias="createdBy")] = None,
):
    filters = TicketFilters(
        status=status_,
        priority=priority,
        assigned_to=assigned_to,
        created_by=created_by,
    )
    return await svc.list_tickets(db, current, filters)


@router.get("/{ticket_id}", response_model=TicketOut)
async def get_ticket(ticket_id: int, db: DBDep, settings: SettingsDep, current: CurrentUser):
    return await svc.get_ticket_for(db, settings, current, ticket_id)


@router.put("/{ticket_id}", response_model=TicketOut)
async def update_ticket(
    ticket_id: int,
    payload: TicketUpdate,
    db: DBDep,
    settings: SettingsDep,
    current: CurrentUser,
    if_match: Annotated[Optional[str], Header()] = None,
):
    return await svc.update_ticket(
        db,
        settings,
        current,
        ticket_id,
        payload,
        expected_version=_parse_if_match(if_match),
    )


@router.delete("/{ticket_id}")
async def delete_ticket(ticket_id: int, db: DBDep, settings: SettingsDep, current: CurrentUser):
    await svc.delete_ticket(db, settings, current, ticket_id)
    return {"msg": "Ticket removed successfully"}
