"""Level computation.

Quadratic curve: level N starts at (N - 1)^2 * 100 XP, so level 2 is
reached at 100 XP, level 3 at 400, level 4 at 900, level 5 at 1600.
"""

from __future__ import annotations

from math import isqrt


def level_for_xp(total_xp: int) -> int:
    """floor(sqrt(total_xp / 100)) + 1, computed in integers."""
    if total_xp <= 0:
        return 1
    return isqrt(total_xp // 100) + 1


def xp_threshold_for_level(level: int) -> int:
    """Cumulative XP at which ``level`` begins."""
    if level <= 1:
        return 0
    return (level - 1) ** 2 * 100


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP (progress bar data)."""
    level = level_for_xp(total_xp)
    current_floor = xp_threshold_for_level(level)
    next_level_xp = xp_threshold_for_level(level + 1)

    return {
        "level": level,
        "xp_into_level": max(total_xp, 0) - current_floor,
        "xp_for_level": next_level_xp - current_floor,
        "next_level": level + 1,
        "next_level_xp": next_level_xp,
    }
