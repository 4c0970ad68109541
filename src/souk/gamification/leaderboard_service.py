"""Leaderboards: periodically materialized rankings.

Each type is rebuilt wholesale (delete + recompute + insert) inside a
single transaction, so readers see either the previous ranking or the new
one. Reads only ever touch the materialized ``leaderboards`` table.
"""

from __future__ import annotations

import asyncio
import logging
import zlib
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, distinct, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from souk.db.models import (
    Comment,
    LeaderboardEntry,
    Like,
    Order,
    Post,
    User,
    UserGamification,
    utcnow,
)
from souk.db.upsert import dialect_name
from souk.gamification.settings_gate import SettingsGate
from souk.gamification.xp_service import utc_day_start

logger = logging.getLogger(__name__)

LEADERBOARD_TYPES: dict[str, dict[str, str]] = {
    "top_level": {
        "name": "Top Level",
        "description": "Highest level users",
    },
    "weekly_sellers": {
        "name": "Weekly Top Sellers",
        "description": "Most completed sales in the last 7 days",
    },
    "monthly_creators": {
        "name": "Monthly Top Creators",
        "description": "Most likes on posts created in the last 30 days",
    },
    "top_helpers": {
        "name": "Top Helpers",
        "description": "Most comments written and likes given",
    },
}

DEFAULT_SIZE = 100

Row = tuple[int, float, dict[str, Any]]


def validate_type(leaderboard_type: str) -> None:
    if leaderboard_type not in LEADERBOARD_TYPES:
        raise ValueError(f"Unknown leaderboard type: {leaderboard_type}")


async def _top_level(db: AsyncSession, size: int, now: datetime) -> list[Row]:
    result = await db.execute(
        select(UserGamification.user_id, UserGamification.current_level, UserGamification.total_xp)
        .order_by(
            UserGamification.current_level.desc(),
            UserGamification.total_xp.desc(),
            UserGamification.user_id,
        )
        .limit(size)
    )
    return [
        (row.user_id, float(row.current_level), {"total_xp": int(row.total_xp)})
        for row in result
    ]


async def _weekly_sellers(db: AsyncSession, size: int, now: datetime) -> list[Row]:
    since = utc_day_start(now) - timedelta(days=7)
    sales = func.count(Order.id).label("sales")
    result = await db.execute(
        select(Order.seller_id, sales)
        .where(Order.status == "delivered", Order.created_at >= since)
        .group_by(Order.seller_id)
        .order_by(sales.desc(), Order.seller_id)
        .limit(size)
    )
    return [(row.seller_id, float(row.sales), {"sales": int(row.sales)}) for row in result]


async def _monthly_creators(db: AsyncSession, size: int, now: datetime) -> list[Row]:
    since = utc_day_start(now) - timedelta(days=30)
    likes = func.count(distinct(Like.id)).label("likes")
    posts = func.count(distinct(Post.id)).label("posts")
    result = await db.execute(
        select(Post.user_id, likes, posts)
        .select_from(Post)
        .outerjoin(Like, and_(Like.target_id == Post.id, Like.target_type == "post"))
        .where(Post.created_at >= since, Post.is_deleted.is_(False))
        .group_by(Post.user_id)
        .order_by(likes.desc(), Post.user_id)
        .limit(size)
    )
    return [
        (row.user_id, float(row.likes), {"likes": int(row.likes), "posts": int(row.posts)})
        for row in result
    ]


async def _top_helpers(db: AsyncSession, size: int, now: datetime) -> list[Row]:
    comments = (
        select(func.count(Comment.id))
        .where(Comment.user_id == UserGamification.user_id, Comment.is_deleted.is_(False))
        .correlate(UserGamification)
        .scalar_subquery()
    )
    likes = (
        select(func.count(Like.id))
        .where(Like.user_id == UserGamification.user_id)
        .correlate(UserGamification)
        .scalar_subquery()
    )
    score = (comments + likes).label("score")
    result = await db.execute(
        select(UserGamification.user_id, comments.label("comments"), likes.label("likes"), score)
        .order_by(score.desc(), UserGamification.user_id)
        .limit(size)
    )
    return [
        (
            row.user_id,
            float(row.score),
            {"comments": int(row.comments), "likes_given": int(row.likes)},
        )
        for row in result
    ]


_SOURCES = {
    "top_level": _top_level,
    "weekly_sellers": _weekly_sellers,
    "monthly_creators": _monthly_creators,
    "top_helpers": _top_helpers,
}


class LeaderboardEngine:
    """Rebuilds and reads materialized leaderboards."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gate: SettingsGate,
        size: int = DEFAULT_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self.gate = gate
        self.size = size
        self._lock = asyncio.Lock()

    @property
    def is_updating(self) -> bool:
        return self._lock.locked()

    async def update_all_leaderboards(self, now: datetime | None = None) -> dict[str, int | None] | None:
        """Rebuild every type. Returns rows written per type (None = failed).

        Returns None without doing anything when leaderboards are disabled or
        a rebuild is already running in this process.
        """
        if not await self.gate.is_feature_enabled("leaderboards"):
            logger.debug("Leaderboards disabled, skipping rebuild")
            return None
        if self._lock.locked():
            logger.warning("Leaderboard rebuild already in progress, skipping")
            return None

        async with self._lock:
            now = now or utcnow()
            results = {t: await self.rebuild(t, now) for t in LEADERBOARD_TYPES}

        logger.info("Leaderboards rebuilt: %s", results)
        return results

    async def rebuild(self, leaderboard_type: str, now: datetime | None = None) -> int | None:
        """Atomically replace one leaderboard. Failures leave the old rows intact."""
        validate_type(leaderboard_type)
        now = now or utcnow()
        try:
            async with self._session_factory() as db, db.begin():
                if dialect_name(db) == "postgresql":
                    # Serialize rebuilds of the same type across processes
                    await db.execute(
                        text("SELECT pg_advisory_xact_lock(:key)"),
                        {"key": zlib.crc32(f"leaderboard:{leaderboard_type}".encode())},
                    )
                await db.execute(
                    delete(LeaderboardEntry).where(LeaderboardEntry.leaderboard_type == leaderboard_type)
                )
                rows = await _SOURCES[leaderboard_type](db, self.size, now)
                db.add_all([
                    LeaderboardEntry(
                        user_id=user_id,
                        leaderboard_type=leaderboard_type,
                        rank=rank,
                        score=score,
                        entry_metadata=meta,
                        created_at=now,
                    )
                    for rank, (user_id, score, meta) in enumerate(rows, start=1)
                ])
        except Exception:
            logger.exception("Failed to rebuild leaderboard %s", leaderboard_type)
            return None
        return len(rows)

    async def get_leaderboard(self, leaderboard_type: str, limit: int = 50) -> list[dict[str, Any]]:
        validate_type(leaderboard_type)
        async with self._session_factory() as db:
            result = await db.execute(
                select(LeaderboardEntry, User, UserGamification)
                .join(User, User.id == LeaderboardEntry.user_id)
                .outerjoin(UserGamification, UserGamification.user_id == LeaderboardEntry.user_id)
                .where(LeaderboardEntry.leaderboard_type == leaderboard_type)
                .order_by(LeaderboardEntry.rank)
                .limit(limit)
            )
            return [
                {
                    "rank": entry.rank,
                    "user_id": entry.user_id,
                    "username": user.username,
                    "first_name": user.first_name,
                    "last_name": user.last_name,
                    "profile_image": user.profile_image,
                    "score": entry.score,
                    "current_level": gam.current_level if gam else 1,
                    "total_xp": gam.total_xp if gam else 0,
                    "metadata": entry.entry_metadata or {},
                }
                for entry, user, gam in result.tuples()
            ]

    async def get_user_rank(self, user_id: int, leaderboard_type: str) -> dict[str, Any] | None:
        validate_type(leaderboard_type)
        async with self._session_factory() as db:
            result = await db.execute(
                select(LeaderboardEntry.rank, LeaderboardEntry.score).where(
                    LeaderboardEntry.leaderboard_type == leaderboard_type,
                    LeaderboardEntry.user_id == user_id,
                )
            )
            row = result.one_or_none()
        if row is None:
            return None
        return {"rank": row.rank, "score": row.score}

    @staticmethod
    def get_leaderboard_types() -> list[dict[str, str]]:
        return [{"type": key, **info} for key, info in LEADERBOARD_TYPES.items()]
