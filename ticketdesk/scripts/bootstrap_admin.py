from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketdesk.core.config import settings
from ticketdesk.core.logging import setup_logging
from ticketdesk.core.security import hash_password
from ticketdesk.db.models import RoleEnum as Role, User, utcnow
from ticketdesk.db.session import Database

log = logging.getLogger("ticketdesk.bootstrap")


# ---------- helpers ----------
async def _get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one_or_none()


async def ensure_user(
    db: AsyncSession,
    *,
    email: str,
    username: str,
    role: Role,
    password_plain: Optional[str],
) -> User:
    """
    Якщо користувача немає — створює його (потрібен password_plain).
    Якщо є — оновлює роль (пароль не чіпає).
    """
    email = email.strip().lower()
    user = await _get_user_by_email(db, email)

    if user is None:
        if not password_plain:
            raise ValueError(f"Не задано пароль для нового користувача {email}")
        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password_plain),
            role=role,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        log.info("bootstrap_user_created", extra={"email": email, "role": role.value})
        return user

    if user.role != role:
        user.role = role
        user.updated_at = utcnow()
        await db.commit()
        log.info("bootstrap_user_updated", extra={"email": email, "role": role.value})
    else:
        log.info("bootstrap_user_unchanged", extra={"email": email, "role": role.value})
    return user


async def seed(
    db: AsyncSession,
    *,
    admin_email: str,
    admin_password: str,
    admin_username: str,
    make_demo_agent: bool,
    make_demo_user: bool,
) -> None:
    # 1) admin
    await ensure_user(db, email=admin_email, username=admin_username, role=Role.admin, password_plain=admin_password)

    # 2) demo agent
    if make_demo_agent:
        await ensure_user(db, email="agent@example.com", username="agent", role=Role.agent, password_plain="Agent123!")

    # 3) demo user
    if make_demo_user:
        await ensure_user(db, email="user@example.com", username="user", role=Role.user, password_plain="User123!")


async def _run(args: argparse.Namespace) -> None:
    database = Database(settings.database_url, echo=settings.db_echo)
    database.connect()
    try:
        if args.create_tables:
            await database.create_all()
        async with database.session() as db:
            await seed(
                db,
                admin_email=args.email,
                admin_password=args.password,
                admin_username=args.username,
                make_demo_agent=args.demo_agent,
                make_demo_user=args.demo_user,
            )
    finally:
        await database.dispose()
    log.info("bootstrap_done")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed admin та демо-користувачів")
    p.add_argument("email", nargs="?", default=settings.admin_email, help="Email адміністратора")
    p.add_argument("password", nargs="?", default=settings.admin_password, help="Пароль адміністратора")
    p.add_argument("-u", "--username", default=settings.admin_username, help="Username адміністратора")

    p.add_argument("--demo-agent", dest="demo_agent", action="store_true", help="Створити demo-агента")
    p.add_argument("--no-demo-agent", dest="demo_agent", action="store_false", help="Не створювати demo-агента")
    p.set_defaults(demo_agent=settings.create_demo_agent)

    p.add_argument("--demo-user", dest="demo_user", action="store_true", help="Створити demo-користувача")
    p.add_argument("--no-demo-user", dest="demo_user", action="store_false", help="Не створювати demo-користувача")
    p.set_defaults(demo_user=settings.create_demo_user)

    p.add_argument("--create-tables", action="store_true", help="Створити таблиці без alembic (dev)")
    return p.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)

    if not args.email:
        raise SystemExit("Помилка: не задано email адміністратора (аргумент або ADMIN_EMAIL у .env)")
    if not args.password:
        raise SystemExit("Помилка: не задано пароль адміністратора (аргумент або ADMIN_PASSWORD у .env)")

    setup_logging(settings.log_level)
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
