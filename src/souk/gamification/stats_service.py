"""Aggregate user counters read from the marketplace tables."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from souk.db.models import (
    Comment,
    Like,
    Order,
    Post,
    ReputationScore,
    UserGamification,
)
from souk.gamification.criteria import UserStats


async def _scalar(db: AsyncSession, stmt) -> int:
    value = (await db.execute(stmt)).scalar_one_or_none()
    return int(value or 0)


async def count_posts(db: AsyncSession, user_id: int) -> int:
    return await _scalar(
        db,
        select(func.count(Post.id)).where(Post.user_id == user_id, Post.is_deleted.is_(False)),
    )


async def count_comments(db: AsyncSession, user_id: int) -> int:
    return await _scalar(
        db,
        select(func.count(Comment.id)).where(
            Comment.user_id == user_id, Comment.is_deleted.is_(False)
        ),
    )


async def count_likes_received(db: AsyncSession, user_id: int) -> int:
    return await _scalar(
        db,
        select(func.count(Like.id))
        .join(Post, and_(Like.target_id == Post.id, Like.target_type == "post"))
        .where(Post.user_id == user_id),
    )


async def count_likes_given(db: AsyncSession, user_id: int) -> int:
    return await _scalar(db, select(func.count(Like.id)).where(Like.user_id == user_id))


async def count_sales(db: AsyncSession, user_id: int) -> int:
    return await _scalar(
        db,
        select(func.count(Order.id)).where(Order.seller_id == user_id, Order.status == "delivered"),
    )


async def positive_feedback(db: AsyncSession, user_id: int) -> int:
    return await _scalar(
        db,
        select(ReputationScore.positive_feedback_count).where(ReputationScore.user_id == user_id),
    )


async def current_level(db: AsyncSession, user_id: int) -> int:
    value = await _scalar(
        db, select(UserGamification.current_level).where(UserGamification.user_id == user_id)
    )
    return value or 1


async def streak_days(db: AsyncSession, user_id: int) -> int:
    return await _scalar(
        db, select(UserGamification.current_streak).where(UserGamification.user_id == user_id)
    )


_LOADERS: dict[str, Callable[[AsyncSession, int], Awaitable[int]]] = {
    "level": current_level,
    "posts": count_posts,
    "comments": count_comments,
    "likes_received": count_likes_received,
    "sales": count_sales,
    "positive_feedback": positive_feedback,
    "streak_days": streak_days,
    "likes_given": count_likes_given,
}


async def load_user_stats(
    db: AsyncSession,
    user_id: int,
    needed: Iterable[str] | None = None,
) -> UserStats:
    """Snapshot of the requested counters; the rest keep their defaults."""
    names = _LOADERS.keys() if needed is None else [n for n in needed if n in _LOADERS]
    values = {name: await _LOADERS[name](db, user_id) for name in names}
    return UserStats(**values)
