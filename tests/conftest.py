from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ticketdesk.core.config import Settings
from ticketdesk.db.session import Database
from ticketdesk.main import create_app


@dataclass
class Actor:
    id: int
    username: str
    role: str
    token: str
    headers: dict = field(default_factory=dict)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.database_url)
    db.connect()
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def app(settings, database):
    application = create_app(settings)
    # lifespan не запускається під ASGITransport, тому БД підставляємо вручну
    application.state.db = database
    return application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def make_actor(client) -> Callable[..., Awaitable[Actor]]:
    async def _make(username: str, role: str = "user") -> Actor:
        r = await client.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": "Secret123!",
                "role": role,
            },
        )
        assert r.status_code == 201, r.text
        token = r.json()["token"]
        headers = {"x-auth-token": token}
        me = await client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200, me.text
        return Actor(id=me.json()["id"], username=username, role=role, token=token, headers=headers)

    return _make


@pytest.fixture
def create_ticket(client) -> Callable[..., Awaitable[dict]]:
    async def _create(actor: Actor, **body) -> dict:
        payload = {"title": "Printer is down", "description": "Nothing prints on floor 2"}
        payload.update(body)
        r = await client.post("/api/tickets", json=payload, headers=actor.headers)
        assert r.status_code == 201, r.text
        return r.json()

    return _create
