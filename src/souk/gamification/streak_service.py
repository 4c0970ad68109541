"""Daily login streak tracking (UTC calendar days)."""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from souk.db.models import UserGamification, utcnow

logger = logging.getLogger(__name__)

STREAK_BONUSES: tuple[tuple[int, str], ...] = (
    (3, "daily_login_streak_3"),
    (7, "daily_login_streak_7"),
)


def next_streak(last_login: date | None, current_streak: int, today: date) -> int:
    """Streak after logging in on ``today``.

    Same day keeps the streak, the following day extends it, any gap
    restarts at 1.
    """
    if last_login == today and current_streak > 0:
        return current_streak
    if last_login == today - timedelta(days=1):
        return current_streak + 1
    return 1


def streak_bonus_actions(streak: int) -> list[str]:
    return [action for days, action in STREAK_BONUSES if streak >= days]


async def record_login(db: AsyncSession, user_id: int, today: date | None = None) -> int:
    """Update streak counters on the (existing) profile row. Returns the new streak."""
    today = today or utcnow().date()
    result = await db.execute(
        select(UserGamification).where(UserGamification.user_id == user_id).with_for_update()
    )
    gam = result.scalar_one()

    streak = next_streak(gam.last_login_date, gam.current_streak, today)
    if streak != gam.current_streak or gam.last_login_date != today:
        gam.current_streak = streak
        gam.longest_streak = max(gam.longest_streak, streak)
        gam.last_login_date = today
        gam.updated_at = utcnow()
        logger.debug("User %s streak now %s", user_id, streak)
    return streak
