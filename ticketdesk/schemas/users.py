# ticketdesk/schemas/users.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from ticketdesk.db.models import RoleEnum as Role


class UserBrief(BaseModel):
    """Коротке представлення користувача у тікетах/коментарях."""
    model_config = ConfigDict(from_attributes=True)
    id: int
    username: str
    email: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    username: str
    email: str
    role: Role
    created_at: datetime
    updated_at: datetime


class SetRoleRequest(BaseModel):
    role: Role
