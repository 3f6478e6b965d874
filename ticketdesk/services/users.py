# ticketdesk/services/users.py
"""User directory: список користувачів і зміна ролей (тільки для адміна)."""
from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketdesk.core.errors import AuthorizationError, NotFoundError, ValidationError
from ticketdesk.db.models import RoleEnum as Role, User, utcnow
from ticketdesk.services.policy import can_manage_users

log = logging.getLogger(__name__)


def _ensure_admin(actor: User) -> None:
    if not can_manage_users(actor.role):
        raise AuthorizationError("Access denied. Admin role required.")


async def fetch_all(db: AsyncSession, actor: User) -> Sequence[User]:
    _ensure_admin(actor)
    rows = (await db.execute(select(User).order_by(User.id.asc()))).scalars().all()
    return rows


async def set_role(db: AsyncSession, actor: User, user_id: int, new_role: str | Role) -> User:
    _ensure_admin(actor)
    try:
        role = Role(getattr(new_role, "value", new_role))
    except ValueError:
        raise ValidationError("Invalid role specified.", field="role")

    u = await db.get(User, user_id)
    if not u:
        raise NotFoundError("User not found")

    old = u.role
    u.role = role
    u.updated_at = utcnow()
    await db.commit()
    await db.refresh(u)
    log.info(
        "role_changed",
        extra={"user_id": u.id, "from": getattr(old, "value", old), "to": role.value, "actor_id": actor.id},
    )
    return u
