"""arq worker for leaderboard rebuilds.

Runs the same rebuild as the in-process scheduler, for deployments that
disable the scheduler in the API processes (SOUK_LEADERBOARD_SCHEDULER_ENABLED=false).

Usage: arq souk.workers.leaderboard_worker.WorkerSettings
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from souk.config import get_settings
from souk.database import close_db, get_session_factory, init_db
from souk.gamification.service import build_gamification

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["gamification"] = build_gamification(get_session_factory(), settings)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()


async def rebuild_leaderboards(ctx: dict) -> dict[str, int | None] | None:  # type: ignore[type-arg]
    """Hourly full rebuild of every leaderboard type."""
    gamification = ctx["gamification"]
    if not await gamification.gate.is_enabled():
        return None
    results = await gamification.leaderboards.update_all_leaderboards()
    logger.info("Worker leaderboard rebuild finished: %s", results)
    return results


class WorkerSettings:
    """arq worker settings for leaderboard rebuilds."""

    functions = [rebuild_leaderboards]
    cron_jobs = [
        cron(rebuild_leaderboards, minute={0}, run_at_startup=True, unique=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 1
