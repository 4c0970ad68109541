"""Seller reputation: score, trust score and tier from marketplace signals."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from souk.db.models import (
    Message,
    Order,
    ReputationScore,
    UserGamification,
    UserReport,
    UserReview,
    utcnow,
)
from souk.db.upsert import insert_for
from souk.gamification.settings_gate import SettingsGate

logger = logging.getLogger(__name__)

RESPONSE_WINDOW = timedelta(days=1)

# (min score, tier) from highest to lowest
REPUTATION_LEVELS: tuple[tuple[int, str], ...] = (
    (500, "Elite Seller"),
    (300, "Trusted Seller"),
    (150, "Established Seller"),
    (50, "Rising Seller"),
    (0, "Beginner"),
)


@dataclass(frozen=True)
class ReputationFactors:
    positive_feedback: int = 0
    negative_feedback: int = 0
    completed_sales: int = 0
    avg_response_minutes: float = 0.0
    reports_against: int = 0


@dataclass(frozen=True)
class ReputationResult:
    score: int
    level: str
    trust_score: int
    factors: ReputationFactors

    def as_dict(self) -> dict:
        return {
            "score": self.score,
            "level": self.level,
            "trust_score": self.trust_score,
            "factors": asdict(self.factors),
        }


def calculate_reputation_score(f: ReputationFactors) -> int:
    score = f.positive_feedback * 4 + f.completed_sales * 2

    avg = f.avg_response_minutes
    if 0 < avg < 5:
        score += 30
    elif 0 < avg < 15:
        score += 20
    elif 0 < avg < 60:
        score += 10

    score -= f.negative_feedback * 5
    score -= f.reports_against * 10
    return max(0, int(score))


def calculate_trust_score(f: ReputationFactors) -> int:
    """0..100, starting from a neutral 50."""
    trust = 50 + min(30, f.positive_feedback * 2)
    if 0 < f.avg_response_minutes < 30:
        trust += 10
    trust -= f.negative_feedback * 10
    trust -= f.reports_against * 15
    return max(0, min(100, int(trust)))


def get_reputation_level(score: int) -> str:
    for floor, name in REPUTATION_LEVELS:
        if score >= floor:
            return name
    return "Beginner"


def average_response_minutes(
    messages: Iterable[tuple[int, int, datetime]],
    user_id: int,
) -> float:
    """Mean minutes from a message the user received to their next reply.

    ``messages`` are (chat_id, sender_id, created_at) rows sorted by chat and
    time. Replies later than RESPONSE_WINDOW are ignored.
    """
    waiting: dict[int, list[datetime]] = {}
    deltas: list[float] = []
    for chat_id, sender_id, created_at in messages:
        if sender_id != user_id:
            waiting.setdefault(chat_id, []).append(created_at)
            continue
        for received_at in waiting.pop(chat_id, []):
            delta = created_at - received_at
            if timedelta(0) < delta < RESPONSE_WINDOW:
                deltas.append(delta.total_seconds() / 60)
    if not deltas:
        return 0.0
    return round(sum(deltas) / len(deltas), 2)


async def _count(db: AsyncSession, stmt) -> int:
    return int((await db.execute(stmt)).scalar_one() or 0)


async def load_factors(db: AsyncSession, user_id: int) -> ReputationFactors:
    delivered = await _count(
        db,
        select(func.count(Order.id)).where(Order.seller_id == user_id, Order.status == "delivered"),
    )
    negative = await _count(
        db,
        select(func.count(UserReview.id)).where(
            UserReview.reviewed_user_id == user_id,
            UserReview.review_type == "seller",
            UserReview.rating <= 2,
        ),
    )
    reports = await _count(
        db, select(func.count(UserReport.id)).where(UserReport.reported_user_id == user_id)
    )

    rows = await db.execute(
        select(Message.chat_id, Message.sender_id, Message.created_at)
        .where(or_(Message.receiver_id == user_id, Message.sender_id == user_id))
        .order_by(Message.chat_id, Message.created_at, Message.id)
    )
    avg = average_response_minutes(((r.chat_id, r.sender_id, r.created_at) for r in rows), user_id)

    # A delivered order counts both as a completed sale and as positive feedback
    return ReputationFactors(
        positive_feedback=delivered,
        negative_feedback=negative,
        completed_sales=delivered,
        avg_response_minutes=avg,
        reports_against=reports,
    )


class ReputationEngine:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], gate: SettingsGate) -> None:
        self._session_factory = session_factory
        self.gate = gate

    async def update_reputation(self, user_id: int) -> ReputationResult | None:
        """Recompute and persist a user's reputation. None if disabled or on failure."""
        if not await self.gate.is_feature_enabled("reputation"):
            return None

        try:
            async with self._session_factory() as db:
                factors = await load_factors(db, user_id)
                score = calculate_reputation_score(factors)
                level = get_reputation_level(score)
                trust = calculate_trust_score(factors)

                values = {
                    "reputation_score": score,
                    "reputation_level": level,
                    "positive_feedback_count": factors.positive_feedback,
                    "negative_feedback_count": factors.negative_feedback,
                    "completed_sales_count": factors.completed_sales,
                    "response_time_avg_minutes": factors.avg_response_minutes,
                    "reports_against_count": factors.reports_against,
                    "trust_score": trust,
                    "updated_at": utcnow(),
                }
                stmt = insert_for(db, ReputationScore).values(user_id=user_id, **values)
                await db.execute(
                    stmt.on_conflict_do_update(index_elements=["user_id"], set_=values)
                )
                # Mirror onto the profile row if the user has one
                await db.execute(
                    update(UserGamification)
                    .where(UserGamification.user_id == user_id)
                    .values(reputation_score=score, reputation_level=level)
                )
                await db.commit()
        except Exception:
            logger.exception("Failed to update reputation for user %s", user_id)
            return None

        logger.info("Reputation for user %s: %s (%s)", user_id, score, level)
        return ReputationResult(score=score, level=level, trust_score=trust, factors=factors)

    async def get_user_reputation(self, user_id: int) -> ReputationScore | None:
        """Stored reputation row, computing it on first access."""
        async with self._session_factory() as db:
            row = await db.get(ReputationScore, user_id)
        if row is not None:
            return row

        if await self.update_reputation(user_id) is None:
            return None
        async with self._session_factory() as db:
            return await db.get(ReputationScore, user_id)
