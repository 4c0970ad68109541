"""Notification port for per-user gamification events.

Contract: delivery is at-most-once and fire-and-forget. The engines never
depend on an emit succeeding; implementations must not raise, and any
exception that escapes anyway is swallowed by the caller.

Events: ``xp:earned``, ``level:up``, ``badge:earned``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def emit(self, user_id: int, event: str, payload: dict[str, Any]) -> None: ...


class RedisNotifier:
    """Publishes to ws:user:{user_id}; the WebSocket gateway fans out to sockets."""

    def __init__(self, redis: object | None) -> None:
        self.redis = redis

    async def emit(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.publish(  # type: ignore[union-attr]
                f"ws:user:{user_id}",
                json.dumps({"event": event, "data": payload}, default=str),
            )
        except Exception:
            logger.warning("Failed to publish %s via ws:user:%s", event, user_id, exc_info=True)


async def notify(
    notifier: Notifier | None,
    user_id: int,
    event: str,
    payload: dict[str, Any],
) -> None:
    """Emit through ``notifier`` if one was supplied, never raising."""
    if notifier is None:
        return
    try:
        await notifier.emit(user_id, event, payload)
    except Exception:
        logger.warning("Notifier failed for %s (user=%s)", event, user_id, exc_info=True)
