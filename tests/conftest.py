"""Shared test fixtures.

Tests run against in-memory SQLite (aiosqlite). Redis is replaced by a
recording notifier and the leaderboard scheduler is never started.
"""

from __future__ import annotations

import os

os.environ.setdefault("SOUK_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SOUK_JWT_SECRET", "test-secret-key-for-jwt-signing-only")
os.environ.setdefault("SOUK_LOG_FORMAT", "console")
os.environ.setdefault("SOUK_LEADERBOARD_SCHEDULER_ENABLED", "false")

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from souk.config import get_settings
from souk.database import close_db, get_engine, get_session_factory, init_db
from souk.db.base import Base
from souk.db.models import SystemSetting, User, UserGamification
from souk.gamification.seed import seed_all
from souk.gamification.service import GamificationService
from souk.gamification.settings_gate import SettingsGate

get_settings.cache_clear()


class RecordingNotifier:
    """Notifier that keeps every emitted event in memory."""

    def __init__(self) -> None:
        self.events: list[tuple[int, str, dict[str, Any]]] = []

    async def emit(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        self.events.append((user_id, event, payload))

    def of(self, event: str) -> list[dict[str, Any]]:
        return [payload for _, name, payload in self.events if name == event]


def utc(days: float = 0, hours: float = 0) -> datetime:
    """Now (UTC) shifted by the given offset."""
    return datetime.now(timezone.utc) + timedelta(days=days, hours=hours)


async def add_rows(session_factory: async_sessionmaker[AsyncSession], *rows: Any) -> None:
    async with session_factory() as db:
        db.add_all(rows)
        await db.commit()


async def set_setting(session_factory: async_sessionmaker[AsyncSession], key: str, value: str) -> None:
    async with session_factory() as db:
        await db.execute(
            update(SystemSetting).where(SystemSetting.setting_key == key).values(setting_value=value)
        )
        await db.commit()


async def set_profile(session_factory: async_sessionmaker[AsyncSession], user_id: int, **values: Any) -> None:
    async with session_factory() as db:
        db.add(UserGamification(user_id=user_id, **values))
        await db.commit()


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory schema per test."""
    await init_db("sqlite+aiosqlite:///:memory:")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_session_factory()
    await close_db()


@pytest_asyncio.fixture
async def seeded(session_factory) -> async_sessionmaker[AsyncSession]:
    """Schema with default settings, XP rules and badges."""
    async with session_factory() as db:
        await seed_all(db)
    return session_factory


@pytest_asyncio.fixture
async def gate(seeded) -> SettingsGate:
    return SettingsGate(seeded, ttl_seconds=0)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def gam(seeded, gate, notifier) -> GamificationService:
    return GamificationService(seeded, gate, notifier, leaderboard_size=100)


@pytest_asyncio.fixture
async def users(seeded) -> dict[str, User]:
    """alice, bob and carol are regular users; root is an admin."""
    rows = {
        "alice": User(username="alice", first_name="Alice"),
        "bob": User(username="bob", first_name="Bob"),
        "carol": User(username="carol", first_name="Carol"),
        "root": User(username="root", is_admin=True),
    }
    await add_rows(seeded, *rows.values())
    return rows


@pytest_asyncio.fixture
async def client(gam) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app, wired to the test engine container."""
    from souk.main import create_app

    app = create_app()
    app.state.gamification = gam
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(user: User) -> dict[str, str]:
    from souk.auth.jwt import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user.id, user.is_admin)}"}
