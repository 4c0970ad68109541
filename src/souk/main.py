"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from souk.config import get_settings
from souk.database import close_db, get_session_factory, init_db
from souk.gamification.admin_router import router as gamification_admin_router
from souk.gamification.notifier import RedisNotifier
from souk.gamification.router import router as gamification_router
from souk.gamification.scheduler import LeaderboardScheduler
from souk.gamification.seed import seed_all
from souk.gamification.service import build_gamification
from souk.health.router import router as health_router
from souk.middleware import setup_middleware
from souk.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    redis = await init_redis(settings.redis_url)
    session_factory = get_session_factory()

    if settings.seed_on_startup:
        try:
            async with session_factory() as db:
                await seed_all(db)
        except Exception:
            logger.warning("Seeding failed (tables may not exist yet)", exc_info=True)

    gamification = build_gamification(session_factory, settings, RedisNotifier(redis))
    app.state.gamification = gamification

    scheduler = LeaderboardScheduler(
        gamification.leaderboards,
        gamification.gate,
        initial_delay=settings.leaderboard_initial_delay_seconds,
    )
    if settings.leaderboard_scheduler_enabled:
        scheduler.start()

    yield

    await scheduler.stop()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Souk Gamification API",
        description="XP, levels, badges, leaderboards and seller reputation for the Souk marketplace",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(gamification_admin_router)

    return app


app = create_app()
