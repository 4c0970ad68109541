"""Access to the engine container built at startup."""

from __future__ import annotations

from fastapi import Request

from souk.gamification.service import GamificationService


def get_gamification(request: Request) -> GamificationService:
    """The GamificationService stored on app.state by the lifespan hook."""
    return request.app.state.gamification
