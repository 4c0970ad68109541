"""Feature-flag gate over the system_settings table.

One instance is built at startup and handed to every engine component.
Rows are cached for ``ttl_seconds``; admin writes call :meth:`invalidate`.
"""

from __future__ import annotations

import logging
import time

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from souk.db.models import SystemSetting, utcnow

logger = logging.getLogger(__name__)

SETTING_PREFIX = "gamification_"
MIN_LEADERBOARD_INTERVAL = 60

FEATURES = ("xp", "badges", "leaderboards", "reputation", "seasonal_events")

DEFAULT_SETTINGS: list[dict[str, str]] = [
    {
        "key": "gamification_enabled",
        "value": "true",
        "description": "Master switch for the gamification system",
    },
    {"key": "gamification_xp_enabled", "value": "true", "description": "Enable XP earning"},
    {"key": "gamification_badges_enabled", "value": "true", "description": "Enable badges"},
    {"key": "gamification_leaderboards_enabled", "value": "true", "description": "Enable leaderboards"},
    {"key": "gamification_reputation_enabled", "value": "true", "description": "Enable seller reputation"},
    {
        "key": "gamification_seasonal_events_enabled",
        "value": "false",
        "description": "Enable seasonal events",
    },
    {
        "key": "gamification_xp_multiplier",
        "value": "1.0",
        "description": "Global XP multiplier (1.0 = normal, 2.0 = double XP)",
    },
    {
        "key": "gamification_leaderboard_update_interval",
        "value": "3600",
        "description": "Leaderboard rebuild interval in seconds",
    },
]


class SettingsGate:
    """Reads gamification flags with a short-lived in-memory cache."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: float = 30.0,
        default_interval: int = 3600,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = ttl_seconds
        self._default_interval = default_interval
        self._cache: dict[str, str] | None = None
        self._loaded_at = 0.0

    def invalidate(self) -> None:
        """Drop the cache so the next read hits the database."""
        self._cache = None

    async def _load(self) -> dict[str, str]:
        now = time.monotonic()
        if self._cache is not None and self._ttl > 0 and now - self._loaded_at < self._ttl:
            return self._cache

        async with self._session_factory() as db:
            result = await db.execute(
                select(SystemSetting.setting_key, SystemSetting.setting_value)
                .where(SystemSetting.setting_key.like(f"{SETTING_PREFIX}%"))
            )
            rows = {row.setting_key: row.setting_value for row in result}

        self._cache = rows
        self._loaded_at = now
        return rows

    async def get_value(self, key: str) -> str | None:
        """Cached value of ``key``. Unreadable storage reads as a missing row."""
        try:
            rows = await self._load()
        except (SQLAlchemyError, OSError):
            logger.exception("Failed to read gamification settings")
            return None
        return rows.get(key)

    async def is_enabled(self) -> bool:
        """Master switch. Missing or unreadable row means enabled."""
        value = await self.get_value("gamification_enabled")
        if value is None:
            return True
        return value.strip().lower() == "true"

    async def is_feature_enabled(self, feature: str) -> bool:
        """Per-feature switch. Missing or unreadable row means disabled."""
        if not await self.is_enabled():
            return False
        value = await self.get_value(f"{SETTING_PREFIX}{feature}_enabled")
        return value is not None and value.strip().lower() == "true"

    async def get_xp_multiplier(self) -> float:
        value = await self.get_value("gamification_xp_multiplier")
        if value is None:
            return 1.0
        try:
            multiplier = float(value)
        except ValueError:
            logger.warning("Invalid gamification_xp_multiplier %r, using 1.0", value)
            return 1.0
        return max(multiplier, 0.0)

    async def get_leaderboard_update_interval(self) -> int:
        value = await self.get_value("gamification_leaderboard_update_interval")
        try:
            interval = int(value) if value is not None else self._default_interval
        except ValueError:
            logger.warning("Invalid leaderboard interval %r, using default", value)
            interval = self._default_interval
        return max(interval, MIN_LEADERBOARD_INTERVAL)

    async def get_all(self) -> dict[str, str]:
        """All gamification_* settings keyed without the prefix."""
        rows = await self._load()
        return {
            key[len(SETTING_PREFIX):]: value
            for key, value in sorted(rows.items())
        }

    async def set_value(self, key: str, value: str) -> SystemSetting | None:
        """Update an existing setting row. Returns None if the key is unknown."""
        full_key = key if key.startswith(SETTING_PREFIX) else f"{SETTING_PREFIX}{key}"
        async with self._session_factory() as db:
            result = await db.execute(
                update(SystemSetting)
                .where(SystemSetting.setting_key == full_key)
                .values(setting_value=value, updated_at=utcnow())
                .returning(SystemSetting)
            )
            row = result.scalar_one_or_none()
            await db.commit()

        self.invalidate()
        return row
