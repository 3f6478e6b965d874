# ticketdesk/services/auth.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import AuthenticationError, ValidationError
from ticketdesk.core.security import create_access_token, hash_password, verify_password
from ticketdesk.db.models import RoleEnum as Role, User

log = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.username == username))
    return res.scalar_one_or_none()


async def register_user(
    db: AsyncSession,
    settings: Settings,
    *,
    username: str,
    email: str,
    password: str,
    role: Role | None = None,
) -> User:
    """Реєстрація; дублікати email/username -> ValidationError."""
    if await get_user_by_email(db, email):
        raise ValidationError("User already exists with this email", field="email")
    if await get_user_by_username(db, username):
        raise ValidationError("User already exists with this username", field="username")

    if role is None or not settings.allow_signup_role:
        role = Role.user

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # паралельна реєстрація з тим самим email/username
        raise ValidationError("User already exists")
    await db.refresh(user)
    log.info("user_registered", extra={"user_id": user.id, "role": user.role.value})
    return user


async def authenticate(db: AsyncSession, *, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    return user


def make_token_for_user(user: User, settings: Settings) -> str:
    role_value = getattr(user.role, "value", user.role)
    return create_access_token(
        subject=str(user.id),
        role=str(role_value),
        secret=settings.jwt_secret,
        algorithm=settings.jwt_alg,
        expires_minutes=settings.jwt_expires_min,
    )
