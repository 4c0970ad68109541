"""Gamification facade: wires the engines together and serves composite reads."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from souk.config import Settings
from souk.db.models import (
    AdminActionLog,
    Badge,
    SeasonalEvent,
    User,
    UserBadge,
    UserGamification,
    XPTransaction,
    utcnow,
)
from souk.gamification.audit import log_admin_action
from souk.gamification.badge_service import BadgeEngine
from souk.gamification.event_service import EventEngine
from souk.gamification.exceptions import NotFoundError
from souk.gamification.leaderboard_service import LeaderboardEngine
from souk.gamification.levels import compute_level
from souk.gamification.notifier import Notifier
from souk.gamification.reputation_service import ReputationEngine
from souk.gamification.settings_gate import SettingsGate
from souk.gamification.streak_service import record_login, streak_bonus_actions
from souk.gamification.xp_service import XPAward, XPEngine, ensure_profile, get_profile

logger = logging.getLogger(__name__)


class GamificationService:
    """Container for the engine components plus the cross-engine operations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gate: SettingsGate,
        notifier: Notifier | None = None,
        leaderboard_size: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self.gate = gate
        self.notifier = notifier
        self.events = EventEngine(session_factory, gate)
        self.badges = BadgeEngine(session_factory, gate, notifier)
        self.xp = XPEngine(session_factory, gate, self.events, self.badges, notifier)
        self.leaderboards = LeaderboardEngine(session_factory, gate, leaderboard_size)
        self.reputation = ReputationEngine(session_factory, gate)

    async def initialize_user(self, user_id: int) -> UserGamification:
        """Create the profile row for a new user (idempotent)."""
        async with self._session_factory() as db:
            await ensure_profile(db, user_id)
            await db.commit()
            return await get_profile(db, user_id)  # type: ignore[return-value]

    async def get_user_profile(self, user_id: int) -> dict[str, Any]:
        async with self._session_factory() as db:
            user = await db.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            gam = await get_profile(db, user_id)

        badges = await self.badges.get_user_badges(user_id)
        recent = await self.xp.get_user_xp_history(user_id, limit=10)
        total_xp = gam.total_xp if gam else 0

        return {
            "user_id": user.id,
            "username": user.username,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "profile_image": user.profile_image,
            "total_xp": total_xp,
            "current_level": gam.current_level if gam else 1,
            "level_progress": compute_level(total_xp),
            "reputation_score": gam.reputation_score if gam else 0,
            "reputation_level": gam.reputation_level if gam else "Beginner",
            "current_streak": gam.current_streak if gam else 0,
            "longest_streak": gam.longest_streak if gam else 0,
            "badges": badges,
            "recent_xp": recent,
        }

    async def claim_daily_bonus(self, user_id: int, notifier: Notifier | None = None) -> XPAward | None:
        """Record today's login and award ``daily_login`` plus any streak bonuses.

        Returns None when the bonus was not granted (already claimed today,
        XP disabled, or a failure).
        """
        if not await self.gate.is_feature_enabled("xp"):
            return None

        try:
            async with self._session_factory() as db:
                await ensure_profile(db, user_id)
                streak = await record_login(db, user_id, utcnow().date())
                await db.commit()
        except Exception:
            logger.exception("Failed to record login for user %s", user_id)
            return None

        award = await self.xp.award_xp(user_id, "daily_login", metadata={"streak": streak}, notifier=notifier)
        if award is None:
            return None

        for action in streak_bonus_actions(streak):
            bonus = await self.xp.award_xp(user_id, action, metadata={"streak": streak}, notifier=notifier)
            if bonus is not None:
                award = XPAward(
                    xp_earned=award.xp_earned + bonus.xp_earned,
                    total_xp=bonus.total_xp,
                    current_level=bonus.current_level,
                    leveled_up=award.leveled_up or bonus.leveled_up,
                )
        return award

    async def force_leaderboard_update(self, admin_id: int) -> bool:
        """Admin-triggered rebuild. False if disabled or already running."""
        async with self._session_factory() as db:
            log_admin_action(db, admin_id, "leaderboard_update", {})
            await db.commit()
        return await self.leaderboards.update_all_leaderboards() is not None

    async def update_setting(self, key: str, value: str, admin_id: int) -> dict[str, str]:
        row = await self.gate.set_value(key, value)
        if row is None:
            raise NotFoundError("Setting", key)
        async with self._session_factory() as db:
            log_admin_action(db, admin_id, "setting_update", {"key": row.setting_key, "value": value})
            await db.commit()
        logger.info("Setting %s set to %s by admin %s", row.setting_key, value, admin_id)
        return {"key": row.setting_key, "value": row.setting_value}

    async def get_system_stats(self) -> dict[str, Any]:
        now = utcnow()
        async with self._session_factory() as db:
            total_users = (await db.execute(select(func.count(UserGamification.user_id)))).scalar_one()
            total_xp = (await db.execute(
                select(func.coalesce(func.sum(XPTransaction.xp_amount), 0))
                .where(XPTransaction.xp_amount > 0)
            )).scalar_one()
            total_badges = (await db.execute(select(func.count(UserBadge.id)))).scalar_one()
            avg_level = (await db.execute(select(func.avg(UserGamification.current_level)))).scalar_one()
            active_events = (await db.execute(
                select(func.count(SeasonalEvent.id)).where(
                    SeasonalEvent.is_active.is_(True),
                    SeasonalEvent.start_date <= now,
                    SeasonalEvent.end_date >= now,
                )
            )).scalar_one()

            top_users = await db.execute(
                select(User.id, User.username, UserGamification.total_xp, UserGamification.current_level)
                .join(UserGamification, UserGamification.user_id == User.id)
                .order_by(UserGamification.total_xp.desc(), User.id)
                .limit(10)
            )
            earned = func.count(UserBadge.id).label("earned")
            popular = await db.execute(
                select(Badge.id, Badge.name, Badge.rarity, earned)
                .join(UserBadge, UserBadge.badge_id == Badge.id)
                .group_by(Badge.id, Badge.name, Badge.rarity)
                .order_by(earned.desc(), Badge.id)
                .limit(10)
            )

            return {
                "total_users": int(total_users),
                "total_xp_awarded": int(total_xp),
                "total_badges_awarded": int(total_badges),
                "average_level": round(float(avg_level or 0), 2),
                "active_events": int(active_events),
                "top_users": [
                    {
                        "user_id": row.id,
                        "username": row.username,
                        "total_xp": int(row.total_xp),
                        "current_level": row.current_level,
                    }
                    for row in top_users
                ],
                "popular_badges": [
                    {"badge_id": row.id, "name": row.name, "rarity": row.rarity, "earned": int(row.earned)}
                    for row in popular
                ],
            }

    async def get_admin_logs(self, limit: int = 50) -> list[dict[str, Any]]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(AdminActionLog, User.username)
                .outerjoin(User, User.id == AdminActionLog.admin_id)
                .order_by(AdminActionLog.created_at.desc(), AdminActionLog.id.desc())
                .limit(limit)
            )
            return [
                {
                    "id": log.id,
                    "admin_id": log.admin_id,
                    "admin_username": username,
                    "action_type": log.action_type,
                    "action_data": log.action_data or {},
                    "created_at": log.created_at,
                }
                for log, username in result.tuples()
            ]


def build_gamification(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    notifier: Notifier | None = None,
) -> GamificationService:
    gate = SettingsGate(
        session_factory,
        ttl_seconds=settings.settings_cache_ttl_seconds,
        default_interval=settings.leaderboard_default_interval_seconds,
    )
    return GamificationService(session_factory, gate, notifier, settings.leaderboard_size)
