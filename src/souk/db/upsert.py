"""Dialect-specific INSERT constructs for ON CONFLICT handling."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_name(db: AsyncSession) -> str:
    return db.bind.dialect.name  # type: ignore[union-attr]


def insert_for(db: AsyncSession, model: Any) -> Any:
    """Return an INSERT supporting on_conflict_do_nothing / on_conflict_do_update."""
    name = dialect_name(db)
    if name == "postgresql":
        return pg_insert(model)
    if name == "sqlite":
        return sqlite_insert(model)
    msg = f"Upserts are not supported on {name}"
    raise NotImplementedError(msg)
