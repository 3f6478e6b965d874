# ticketdesk/db/session.py
"""
Підключення до БД як явний об'єкт.

Database створюється в lifespan застосунку (main.py), кладеться в app.state.db
і віддає сесії через залежність get_session. Жодного глобального engine.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ticketdesk.db.base import Base

log = logging.getLogger(__name__)


def _enable_sqlite_fk(dbapi_connection, connection_record) -> None:
    # SQLite без цього ігнорує ON DELETE CASCADE
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_maker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    def connect(self) -> None:
        if self._engine is not None:
            return
        self._engine = create_async_engine(self.url, echo=self.echo, future=True)
        if make_url(self.url).get_backend_name() == "sqlite":
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_fk)
        self._session_maker = async_sessionmaker(
            self._engine, expire_on_commit=False, class_=AsyncSession
        )
        log.info("db_connected", extra={"backend": make_url(self.url).get_backend_name()})

    async def create_all(self) -> None:
        """Створює таблиці напряму (dev/tests). У проді — alembic upgrade head."""
        from ticketdesk.db import models  # noqa: F401  (реєструє таблиці в metadata)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            log.info("db_disposed")
        self._engine = None
        self._session_maker = None

    def session(self) -> AsyncSession:
        if self._session_maker is None:
            raise RuntimeError("Database is not connected")
        return self._session_maker()


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    db: Database = request.app.state.db
    async with db.session() as session:
        yield session
