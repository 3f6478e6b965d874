# ticketdesk/schemas/tickets.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ticketdesk.db.models import PriorityEnum as Priority, TicketStatusEnum as Status
from ticketdesk.schemas.users import UserBrief


def _strip(v):
    return v.strip() if isinstance(v, str) else v


class TicketCreate(BaseModel):
    # status/assignee з тіла запиту ігноруються: тікет завжди стартує open і без виконавця
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    priority: Priority = Field(default=Priority.medium)

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip_text(cls, v):
        return _strip(v)

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, v):
        # порожнє значення з форми -> medium
        return Priority.medium if v in (None, "") else v


class TicketUpdate(BaseModel):
    # усі поля опційні; змінюються частково
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    status: Optional[Status] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("assigned_to", "assignedTo"),
    )

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip_text(cls, v):
        return _strip(v)

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _empty_assignee(cls, v):
        # "" означає "зняти виконавця"
        return None if v == "" else v

    def changes(self) -> dict[str, Any]:
        """
        Лише ті поля, що реально прийшли в запиті.
        assigned_to: null — явне зняття виконавця; інші null вважаємо відсутніми.
        """
        out: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name == "assigned_to" or value is not None:
                out[name] = value
        return out


class TicketFilters(BaseModel):
    status: Optional[Status] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[int] = None
    created_by: Optional[int] = None


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    status: Status
    priority: Priority
    creator_id: int
    assignee_id: Optional[int] = None
    creator: UserBrief
    assignee: Optional[UserBrief] = None
    version: int
    created_at: datetime
    updated_at: datetime
