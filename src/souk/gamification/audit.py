"""Append-only audit rows for gamification events and admin actions."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from souk.db.models import AdminActionLog, EventLog, utcnow


def log_event(db: AsyncSession, user_id: int, event_type: str, data: dict[str, Any]) -> None:
    """Stage an EventLog row; committed with the caller's unit of work."""
    db.add(EventLog(
        user_id=user_id,
        event_type=event_type,
        event_data=data,
        created_at=utcnow(),
    ))


def log_admin_action(db: AsyncSession, admin_id: int, action_type: str, data: dict[str, Any]) -> None:
    db.add(AdminActionLog(
        admin_id=admin_id,
        action_type=action_type,
        action_data=data,
        created_at=utcnow(),
    ))
