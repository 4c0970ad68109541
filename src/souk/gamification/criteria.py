"""Badge criteria as typed threshold checks.

A badge's ``criteria`` column is a JSON object of ``min_*`` keys. It is
parsed once into a list of :class:`Threshold` instances; a badge is earned
when every threshold is met (AND). Keys we don't recognise are ignored and
zero/empty thresholds are treated as absent.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, ClassVar

logger = logging.getLogger(__name__)

RARITY_ORDER = {"common": 0, "rare": 1, "epic": 2, "legendary": 3}


@dataclass(frozen=True)
class UserStats:
    """Aggregate counters a badge can be measured against."""

    level: int = 1
    posts: int = 0
    comments: int = 0
    likes_received: int = 0
    sales: int = 0
    positive_feedback: int = 0
    streak_days: int = 0
    likes_given: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class Threshold:
    required: int

    key: ClassVar[str] = ""
    stat: ClassVar[str] = ""

    def current(self, stats: UserStats) -> int:
        return int(getattr(stats, self.stat))

    def is_met(self, stats: UserStats) -> bool:
        return self.current(stats) >= self.required

    def progress(self, stats: UserStats) -> dict[str, Any]:
        current = self.current(stats)
        percentage = min(100.0, round(current / self.required * 100, 2))
        return {"current": current, "required": self.required, "percentage": percentage}


class MinLevel(Threshold):
    key = "min_level"
    stat = "level"


class MinPosts(Threshold):
    key = "min_posts"
    stat = "posts"


class MinComments(Threshold):
    key = "min_comments"
    stat = "comments"


class MinLikesReceived(Threshold):
    key = "min_likes_received"
    stat = "likes_received"


class MinSales(Threshold):
    key = "min_sales"
    stat = "sales"


class MinPositiveFeedback(Threshold):
    key = "min_positive_feedback"
    stat = "positive_feedback"


class MinStreakDays(Threshold):
    key = "min_streak_days"
    stat = "streak_days"


class MinLikesGiven(Threshold):
    key = "min_likes_given"
    stat = "likes_given"


CRITERIA_TYPES: dict[str, type[Threshold]] = {
    cls.key: cls
    for cls in (
        MinLevel,
        MinPosts,
        MinComments,
        MinLikesReceived,
        MinSales,
        MinPositiveFeedback,
        MinStreakDays,
        MinLikesGiven,
    )
}


def parse_criteria(raw: dict[str, Any] | None) -> list[Threshold]:
    checks: list[Threshold] = []
    for key, value in (raw or {}).items():
        cls = CRITERIA_TYPES.get(key)
        if cls is None:
            continue
        try:
            required = int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric badge criterion %s=%r", key, value)
            continue
        if required <= 0:
            continue
        checks.append(cls(required))
    return checks


def meets_requirements(checks: list[Threshold], stats: UserStats) -> bool:
    """True when every check passes; an empty list is trivially met."""
    return all(check.is_met(stats) for check in checks)


def required_stats(checks: list[Threshold]) -> set[str]:
    return {check.stat for check in checks}
