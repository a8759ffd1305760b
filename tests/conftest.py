"""
Shared fixtures: a throwaway SQLite database per test, a TaskService bound to
it, a handful of actors, and an HTTP client wired to the same database.
"""

from __future__ import annotations

import os

# Must be set before fieldops.core.config is first imported.
os.environ.setdefault("FIELDOPS_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("FIELDOPS_SECRET_KEY", "test-secret-key-with-enough-bytes-for-hs256")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from fieldops.core.auth import create_jwt
from fieldops.core.config import Settings, get_settings
from fieldops.core.database import get_session_factory, init_db, make_session_factory
from fieldops.core.permissions import Actor
from fieldops.main import app
from fieldops.services.tasks import TaskService

ADMIN = Actor(id="admin-1", roles=frozenset({"admin"}))
WORKER_1 = Actor(id="w1", roles=frozenset({"worker"}))
WORKER_2 = Actor(id="w2", roles=frozenset({"worker"}))


def auth_headers(actor: Actor) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt(actor.id, actor.roles)}"}


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fieldops.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite+aiosqlite://")


@pytest.fixture
def service(session_factory, settings) -> TaskService:
    return TaskService(session_factory, settings=settings)


@pytest.fixture
async def client(session_factory, settings):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: settings
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
