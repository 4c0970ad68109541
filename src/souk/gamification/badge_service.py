"""Badge evaluation and award with duplicate prevention and notification."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import case, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from souk.db.models import Badge, UserBadge, utcnow
from souk.db.upsert import insert_for
from souk.gamification.audit import log_admin_action, log_event
from souk.gamification.criteria import (
    RARITY_ORDER,
    meets_requirements,
    parse_criteria,
    required_stats,
)
from souk.gamification.exceptions import NotFoundError
from souk.gamification.notifier import Notifier, notify
from souk.gamification.schemas import BadgeCreate, BadgePatch
from souk.gamification.settings_gate import SettingsGate
from souk.gamification.stats_service import load_user_stats

logger = logging.getLogger(__name__)

_rarity_rank = case(RARITY_ORDER, value=Badge.rarity, else_=len(RARITY_ORDER))


async def get_badge_by_slug(db: AsyncSession, slug: str) -> Badge | None:
    result = await db.execute(select(Badge).where(Badge.slug == slug))
    return result.scalar_one_or_none()


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def insert_user_badge(
    db: AsyncSession,
    user_id: int,
    badge: Badge,
    progress_data: dict[str, Any] | None,
) -> bool:
    """Insert the (user, badge) pair. Returns False if it already existed.

    The unique constraint arbitrates concurrent evaluators: the loser's
    insert is a no-op instead of an error.
    """
    if await has_badge(db, user_id, badge.id):
        return False

    stmt = (
        insert_for(db, UserBadge)
        .values(
            user_id=user_id,
            badge_id=badge.id,
            earned_at=utcnow(),
            progress_data=progress_data,
        )
        .on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        return False

    log_event(db, user_id, "badge_earned", {
        "badge_id": badge.id,
        "badge_name": badge.name,
        "rarity": badge.rarity,
    })
    return True


def badge_payload(badge: Badge) -> dict[str, Any]:
    return {
        "badgeId": badge.id,
        "badgeName": badge.name,
        "badgeIcon": badge.icon_url,
        "badgeRarity": badge.rarity,
    }


class BadgeEngine:
    """Evaluates badge criteria against user stats and awards badges."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gate: SettingsGate,
        notifier: Notifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.gate = gate
        self.notifier = notifier

    async def check_and_award_badges(
        self,
        user_id: int,
        notifier: Notifier | None = None,
    ) -> list[Badge]:
        """Award every active, not-yet-earned badge whose criteria are all met.

        Stats are loaded once per call. Failures are logged and yield [].
        """
        if not await self.gate.is_feature_enabled("badges"):
            return []

        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Badge).where(Badge.is_active.is_(True)).order_by(Badge.id)
                )
                active = result.scalars().all()

                owned_result = await db.execute(
                    select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
                )
                owned = set(owned_result.scalars().all())

                candidates = [
                    (badge, parse_criteria(badge.criteria))
                    for badge in active
                    if badge.id not in owned
                ]
                if not candidates:
                    return []

                needed: set[str] = set()
                for _, checks in candidates:
                    needed |= required_stats(checks)
                stats = await load_user_stats(db, user_id, needed)

                awarded: list[Badge] = []
                for badge, checks in candidates:
                    if not meets_requirements(checks, stats):
                        continue
                    snapshot = {check.stat: check.current(stats) for check in checks}
                    if await insert_user_badge(db, user_id, badge, snapshot):
                        logger.info("Badge %s awarded to user %s", badge.slug, user_id)
                        awarded.append(badge)

                await db.commit()
        except Exception:
            logger.exception("Badge evaluation failed for user %s", user_id)
            return []

        for badge in awarded:
            await notify(notifier or self.notifier, user_id, "badge:earned", badge_payload(badge))
        return awarded

    async def award_badge(
        self,
        user_id: int,
        slug: str,
        metadata: dict[str, Any] | None = None,
        notifier: Notifier | None = None,
    ) -> bool:
        """Grant a specific badge regardless of criteria. False if already held."""
        if not await self.gate.is_feature_enabled("badges"):
            return False
        try:
            async with self._session_factory() as db:
                badge = await get_badge_by_slug(db, slug)
                if badge is None or not badge.is_active:
                    logger.warning("Badge not found: %s", slug)
                    return False
                awarded = await insert_user_badge(db, user_id, badge, metadata or {})
                await db.commit()
        except Exception:
            logger.exception("Failed to award badge %s to user %s", slug, user_id)
            return False

        if awarded:
            logger.info("Badge %s awarded to user %s", slug, user_id)
            await notify(notifier or self.notifier, user_id, "badge:earned", badge_payload(badge))
        return awarded

    # ── Reads ──

    async def get_all_badges(self) -> list[Badge]:
        """Active badges ordered by rarity, then name."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(Badge)
                .where(Badge.is_active.is_(True))
                .order_by(_rarity_rank, Badge.name)
            )
            return list(result.scalars().all())

    async def get_user_badges(self, user_id: int) -> list[UserBadge]:
        """Earned badges, newest first."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(UserBadge)
                .where(UserBadge.user_id == user_id)
                .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
            )
            return list(result.scalars().all())

    async def get_badge_progress(self, user_id: int, badge_id: int) -> dict[str, Any]:
        """Per-criterion progress toward ``badge_id``."""
        async with self._session_factory() as db:
            badge = await db.get(Badge, badge_id)
            if badge is None:
                raise NotFoundError("Badge", badge_id)

            checks = parse_criteria(badge.criteria)
            stats = await load_user_stats(db, user_id, required_stats(checks))
            earned = await has_badge(db, user_id, badge_id)

        return {
            "badge": badge,
            "earned": earned,
            "progress": {check.key: check.progress(stats) for check in checks},
        }

    # ── Admin ──

    async def list_badges(self) -> list[Badge]:
        """All badges including inactive ones."""
        async with self._session_factory() as db:
            result = await db.execute(select(Badge).order_by(_rarity_rank, Badge.name))
            return list(result.scalars().all())

    async def create_badge(self, data: BadgeCreate, admin_id: int) -> Badge:
        async with self._session_factory() as db:
            if await get_badge_by_slug(db, data.slug or ""):
                raise ValueError(f"Badge slug {data.slug!r} already exists")

            now = utcnow()
            badge = Badge(
                name=data.name,
                slug=data.slug,
                description=data.description,
                category=data.category,
                rarity=data.rarity,
                icon_url=data.icon_url,
                criteria=dict(data.criteria),
                benefits=dict(data.benefits),
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            db.add(badge)
            await db.flush()
            log_admin_action(db, admin_id, "badge_create", {"badge_id": badge.id, "slug": badge.slug})
            await db.commit()

        logger.info("Badge %s created", badge.slug)
        return badge

    async def update_badge(self, badge_id: int, patch: BadgePatch, admin_id: int) -> Badge:
        changes = patch.model_dump(exclude_unset=True)
        async with self._session_factory() as db:
            badge = await db.get(Badge, badge_id)
            if badge is None:
                raise NotFoundError("Badge", badge_id)

            for field, value in changes.items():
                setattr(badge, field, value)
            badge.updated_at = utcnow()

            log_admin_action(db, admin_id, "badge_update", {"badge_id": badge_id, "updates": changes})
            await db.commit()
        return badge

    async def delete_badge(self, badge_id: int, admin_id: int) -> None:
        """Delete a badge together with every earned copy."""
        async with self._session_factory() as db:
            badge = await db.get(Badge, badge_id)
            if badge is None:
                raise NotFoundError("Badge", badge_id)
            await db.execute(delete(UserBadge).where(UserBadge.badge_id == badge_id))
            await db.delete(badge)
            log_admin_action(db, admin_id, "badge_delete", {"badge_id": badge_id, "slug": badge.slug})
            await db.commit()
