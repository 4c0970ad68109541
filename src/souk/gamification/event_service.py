"""Seasonal events: time-boxed XP multipliers and bonus badges."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from souk.db.models import SeasonalEvent, utcnow
from souk.gamification.audit import log_admin_action
from souk.gamification.exceptions import NotFoundError
from souk.gamification.schemas import EventCreate, EventPatch
from souk.gamification.settings_gate import SettingsGate

logger = logging.getLogger(__name__)


def _active_clause(now: datetime):
    return (
        SeasonalEvent.is_active.is_(True),
        SeasonalEvent.start_date <= now,
        SeasonalEvent.end_date >= now,
    )


async def max_event_multiplier(db: AsyncSession, now: datetime | None = None) -> float | None:
    """Highest multiplier among running events, or None when none is running."""
    result = await db.execute(
        select(func.max(SeasonalEvent.xp_multiplier)).where(*_active_clause(now or utcnow()))
    )
    best = result.scalar_one_or_none()
    return None if best is None else max(float(best), 0.0)


class EventEngine:
    """Reads and administers seasonal events."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], gate: SettingsGate) -> None:
        self._session_factory = session_factory
        self.gate = gate

    async def get_active_events(self, now: datetime | None = None) -> list[SeasonalEvent]:
        """Currently running events, highest multiplier first."""
        if not await self.gate.is_feature_enabled("seasonal_events"):
            return []
        now = now or utcnow()
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(SeasonalEvent)
                    .where(*_active_clause(now))
                    .order_by(SeasonalEvent.xp_multiplier.desc(), SeasonalEvent.id)
                )
                return list(result.scalars().all())
        except Exception:
            logger.exception("Failed to load active events")
            return []

    async def get_active_multiplier(self, now: datetime | None = None) -> float:
        """Highest multiplier among running events, else the global setting.

        Overlapping events never stack; only the single highest applies.
        """
        try:
            async with self._session_factory() as db:
                best = await max_event_multiplier(db, now)
        except Exception:
            logger.exception("Failed to read event multiplier, using 1.0")
            return 1.0

        if best is not None:
            return best
        return await self.gate.get_xp_multiplier()

    async def get_active_badge_rewards(self, now: datetime | None = None) -> list[tuple[int, str]]:
        """(event_id, badge_slug) pairs granted to anyone earning XP during an event."""
        rewards: list[tuple[int, str]] = []
        for event in await self.get_active_events(now):
            for slug in event.badge_rewards or []:
                if isinstance(slug, str) and slug:
                    rewards.append((event.id, slug))
        return rewards

    async def is_event_active(self, event_id: int, now: datetime | None = None) -> bool:
        now = now or utcnow()
        async with self._session_factory() as db:
            result = await db.execute(
                select(SeasonalEvent.id).where(SeasonalEvent.id == event_id, *_active_clause(now))
            )
            return result.scalar_one_or_none() is not None

    # ── Admin ──

    async def get_all_events(self) -> list[SeasonalEvent]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(SeasonalEvent).order_by(SeasonalEvent.start_date.desc())
            )
            return list(result.scalars().all())

    async def create_event(self, data: EventCreate, admin_id: int) -> SeasonalEvent:
        now = utcnow()
        async with self._session_factory() as db:
            event = SeasonalEvent(
                name=data.name,
                description=data.description,
                start_date=data.start_date,
                end_date=data.end_date,
                xp_multiplier=data.xp_multiplier,
                badge_rewards=list(data.badge_rewards),
                event_rules=dict(data.event_rules),
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            db.add(event)
            await db.flush()
            log_admin_action(db, admin_id, "event_create", {"event_id": event.id, "name": event.name})
            await db.commit()

        logger.info("Seasonal event %s created (x%.2f)", event.name, event.xp_multiplier)
        return event

    async def update_event(self, event_id: int, patch: EventPatch, admin_id: int) -> SeasonalEvent:
        changes = patch.model_dump(exclude_unset=True)
        async with self._session_factory() as db:
            event = await db.get(SeasonalEvent, event_id)
            if event is None:
                raise NotFoundError("Event", event_id)

            for field, value in changes.items():
                setattr(event, field, value)
            event.updated_at = utcnow()

            log_admin_action(
                db, admin_id, "event_update",
                {"event_id": event_id, "updates": patch.model_dump(mode="json", exclude_unset=True)},
            )
            await db.commit()
        return event

    async def delete_event(self, event_id: int, admin_id: int) -> None:
        async with self._session_factory() as db:
            event = await db.get(SeasonalEvent, event_id)
            if event is None:
                raise NotFoundError("Event", event_id)
            await db.delete(event)
            log_admin_action(db, admin_id, "event_delete", {"event_id": event_id})
            await db.commit()
