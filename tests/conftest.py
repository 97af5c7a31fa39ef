"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database with the schema created
from the ORM metadata and the catalogs seeded. Redis is not configured, so
events are skipped and rate limiting passes through.
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("SHAMBA_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SHAMBA_REDIS_URL", "")
os.environ.setdefault("SHAMBA_JWT_SECRET", "test-secret")
os.environ.setdefault("SHAMBA_LOG_FORMAT", "console")

from shamba.auth.jwt import create_access_token  # noqa: E402
from shamba.config import get_settings  # noqa: E402
from shamba.database import close_db, create_schema, get_session, init_db  # noqa: E402
from shamba.gamification.seed import seed_catalogs  # noqa: E402
from shamba.main import create_app  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class RecordingRedis:
    """Stand-in Redis client that records pub/sub publishes."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, json.loads(message)))
        return 1

    def channels(self) -> list[str]:
        return [channel for channel, _ in self.published]


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """A session on a fresh, seeded in-memory database."""
    get_settings.cache_clear()
    await init_db(TEST_DB_URL)
    await create_schema()
    async for session in get_session():
        await seed_catalogs(session)
        await session.commit()
        yield session
        break
    await close_db()


@pytest.fixture
def redis() -> RecordingRedis:
    return RecordingRedis()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app, backed by a fresh seeded database."""
    get_settings.cache_clear()
    app = create_app()
    await init_db(TEST_DB_URL)
    await create_schema()
    async for session in get_session():
        await seed_catalogs(session)
        await session.commit()
        break

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await close_db()


def auth_headers(user_id: str, role: str = "authenticated") -> dict[str, str]:
    """Bearer header for a signed token with ``sub`` = ``user_id``."""
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


@pytest.fixture
def make_headers():
    return auth_headers


@pytest.fixture
def farmer_headers() -> dict[str, str]:
    return auth_headers("farmer-1")


@pytest.fixture
def service_headers() -> dict[str, str]:
    return auth_headers("backend", role="service_role")
