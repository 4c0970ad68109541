"""XP grant service with daily caps, multipliers and level-up detection."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from souk.db.models import UserGamification, XPRule, XPTransaction, utcnow
from souk.db.upsert import insert_for
from souk.gamification.audit import log_admin_action, log_event
from souk.gamification.event_service import EventEngine, max_event_multiplier
from souk.gamification.exceptions import NotFoundError
from souk.gamification.levels import level_for_xp
from souk.gamification.notifier import Notifier, notify
from souk.gamification.schemas import XPRulePatch
from souk.gamification.settings_gate import SettingsGate

if TYPE_CHECKING:
    from souk.gamification.badge_service import BadgeEngine

logger = logging.getLogger(__name__)

MANUAL_ACTION = "admin_adjustment"


@dataclass(frozen=True)
class XPAward:
    xp_earned: int
    total_xp: int
    current_level: int
    leveled_up: bool


@dataclass(frozen=True)
class ManualAdjustment:
    transaction_id: int
    user_id: int
    amount: int
    total_xp: int
    current_level: int


def utc_day_start(now: datetime | None = None) -> datetime:
    """Midnight UTC of the day containing ``now``."""
    now = now or utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def apply_multiplier(amount: int, multiplier: float) -> int:
    return math.floor(amount * multiplier)


async def ensure_profile(db: AsyncSession, user_id: int) -> None:
    """Create the user_gamification row if it does not exist yet."""
    now = utcnow()
    await db.execute(
        insert_for(db, UserGamification)
        .values(user_id=user_id, total_xp=0, current_level=1, created_at=now, updated_at=now)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )


async def get_profile(db: AsyncSession, user_id: int) -> UserGamification | None:
    result = await db.execute(
        select(UserGamification).where(UserGamification.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_active_rule(db: AsyncSession, action_type: str) -> XPRule | None:
    result = await db.execute(
        select(XPRule).where(XPRule.action_type == action_type, XPRule.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def count_today(db: AsyncSession, user_id: int, action_type: str, now: datetime | None = None) -> int:
    result = await db.execute(
        select(func.count(XPTransaction.id)).where(
            XPTransaction.user_id == user_id,
            XPTransaction.action_type == action_type,
            XPTransaction.created_at >= utc_day_start(now),
        )
    )
    return int(result.scalar_one())


async def _raise_level(db: AsyncSession, user_id: int, old_level: int, new_level: int) -> None:
    """Persist a level-up. Never lowers a level another writer already raised."""
    await db.execute(
        update(UserGamification)
        .where(UserGamification.user_id == user_id, UserGamification.current_level < new_level)
        .values(current_level=new_level, updated_at=utcnow())
    )
    log_event(db, user_id, "level_up", {"old_level": old_level, "new_level": new_level})


class XPEngine:
    """Awards XP for user actions according to the xp_rules table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gate: SettingsGate,
        events: EventEngine,
        badges: BadgeEngine | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.gate = gate
        self.events = events
        self.badges = badges
        self.notifier = notifier

    async def award_xp(
        self,
        user_id: int,
        action_type: str,
        entity_id: int | None = None,
        metadata: dict[str, Any] | None = None,
        notifier: Notifier | None = None,
    ) -> XPAward | None:
        """Award XP for ``action_type``.

        Returns None when XP is disabled, the rule is missing or inactive,
        the daily cap is reached, or anything fails. Never raises, so the
        calling request is never affected by a gamification error.
        """
        notifier = notifier or self.notifier

        try:
            if not await self.gate.is_feature_enabled("xp"):
                return None
            global_multiplier = await self.gate.get_xp_multiplier()

            async with self._session_factory() as db:
                rule = await get_active_rule(db, action_type)
                if rule is None:
                    logger.debug("No active XP rule for %s", action_type)
                    return None

                if rule.daily_limit and rule.daily_limit > 0:
                    if await count_today(db, user_id, action_type) >= rule.daily_limit:
                        logger.info("Daily limit reached for user %s on %s", user_id, action_type)
                        return None

                event_multiplier = await max_event_multiplier(db)
                multiplier = global_multiplier if event_multiplier is None else event_multiplier
                xp_amount = apply_multiplier(rule.xp_amount, multiplier)

                await ensure_profile(db, user_id)
                db.add(XPTransaction(
                    user_id=user_id,
                    action_type=action_type,
                    xp_amount=xp_amount,
                    entity_type=rule.entity_type,
                    entity_id=entity_id,
                    tx_metadata={**(metadata or {}), "multiplier": multiplier},
                    created_at=utcnow(),
                ))
                await db.flush()

                result = await db.execute(
                    update(UserGamification)
                    .where(UserGamification.user_id == user_id)
                    .values(
                        total_xp=UserGamification.total_xp + xp_amount,
                        updated_at=utcnow(),
                    )
                    .returning(UserGamification.total_xp, UserGamification.current_level)
                )
                total_xp, stored_level = result.one()

                new_level = level_for_xp(total_xp)
                leveled_up = new_level > stored_level
                if leveled_up:
                    await _raise_level(db, user_id, stored_level, new_level)

                log_event(db, user_id, "xp_earned", {
                    "action_type": action_type,
                    "xp_amount": xp_amount,
                    "total_xp": total_xp,
                    "multiplier": multiplier,
                })
                await db.commit()
        except Exception:
            logger.exception("Failed to award XP (user=%s, action=%s)", user_id, action_type)
            return None

        current_level = max(new_level, stored_level)
        if leveled_up:
            logger.info("User %s leveled up %s -> %s", user_id, stored_level, new_level)
            await self._after_level_up(user_id, stored_level, new_level, notifier)

        await notify(notifier, user_id, "xp:earned", {
            "xpAmount": xp_amount,
            "actionType": action_type,
            "totalXP": total_xp,
            "currentLevel": current_level,
        })
        await self._grant_event_badges(user_id, notifier)

        return XPAward(
            xp_earned=xp_amount,
            total_xp=total_xp,
            current_level=current_level,
            leveled_up=leveled_up,
        )

    async def _after_level_up(
        self,
        user_id: int,
        old_level: int,
        new_level: int,
        notifier: Notifier | None,
    ) -> None:
        if self.badges is not None:
            await self.badges.check_and_award_badges(user_id, notifier)
        await notify(notifier, user_id, "level:up", {"oldLevel": old_level, "newLevel": new_level})

    async def _grant_event_badges(self, user_id: int, notifier: Notifier | None) -> None:
        """Participation badges of running events go to anyone earning XP."""
        if self.badges is None:
            return
        for event_id, slug in await self.events.get_active_badge_rewards():
            await self.badges.award_badge(user_id, slug, {"event_id": event_id}, notifier)

    async def adjust_xp(
        self,
        user_id: int,
        amount: int,
        admin_id: int,
        reason: str | None = None,
        notifier: Notifier | None = None,
    ) -> ManualAdjustment:
        """Admin credit or debit. Bypasses rules, caps and multipliers.

        The total never drops below zero and the level follows the total in
        both directions.
        """
        notifier = notifier or self.notifier
        async with self._session_factory() as db:
            await ensure_profile(db, user_id)
            tx = XPTransaction(
                user_id=user_id,
                action_type=MANUAL_ACTION,
                xp_amount=amount,
                tx_metadata={"reason": reason, "admin_id": admin_id},
                created_at=utcnow(),
            )
            db.add(tx)
            await db.flush()

            new_total = UserGamification.total_xp + amount
            result = await db.execute(
                update(UserGamification)
                .where(UserGamification.user_id == user_id)
                .values(
                    total_xp=case((new_total < 0, 0), else_=new_total),
                    updated_at=utcnow(),
                )
                .returning(UserGamification.total_xp, UserGamification.current_level)
            )
            total_xp, stored_level = result.one()

            new_level = level_for_xp(total_xp)
            if new_level > stored_level:
                await _raise_level(db, user_id, stored_level, new_level)
            elif new_level < stored_level:
                await db.execute(
                    update(UserGamification)
                    .where(UserGamification.user_id == user_id)
                    .values(current_level=new_level)
                )
                log_event(db, user_id, "level_down", {"old_level": stored_level, "new_level": new_level})

            log_admin_action(db, admin_id, "manual_xp", {
                "user_id": user_id,
                "amount": amount,
                "reason": reason,
            })
            await db.commit()

        logger.info("Admin %s adjusted XP of user %s by %+d", admin_id, user_id, amount)
        if new_level > stored_level:
            await self._after_level_up(user_id, stored_level, new_level, notifier)

        return ManualAdjustment(
            transaction_id=tx.id,
            user_id=user_id,
            amount=amount,
            total_xp=total_xp,
            current_level=new_level,
        )

    # ── Reads ──

    async def get_user_xp_history(self, user_id: int, limit: int = 50, offset: int = 0) -> list[XPTransaction]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(XPTransaction)
                .where(XPTransaction.user_id == user_id)
                .order_by(XPTransaction.created_at.desc(), XPTransaction.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_xp_breakdown(self, user_id: int) -> list[dict[str, Any]]:
        """XP totals grouped by action type, largest first."""
        total = func.sum(XPTransaction.xp_amount).label("total_xp")
        async with self._session_factory() as db:
            result = await db.execute(
                select(
                    XPTransaction.action_type,
                    total,
                    func.count(XPTransaction.id).label("action_count"),
                )
                .where(XPTransaction.user_id == user_id)
                .group_by(XPTransaction.action_type)
                .order_by(total.desc())
            )
            return [
                {
                    "action_type": row.action_type,
                    "total_xp": int(row.total_xp or 0),
                    "action_count": int(row.action_count),
                }
                for row in result
            ]

    # ── Rules (admin) ──

    async def get_rules(self) -> list[XPRule]:
        async with self._session_factory() as db:
            result = await db.execute(select(XPRule).order_by(XPRule.category, XPRule.action_type))
            return list(result.scalars().all())

    async def update_rule(self, rule_id: int, patch: XPRulePatch, admin_id: int) -> XPRule:
        changes = patch.model_dump(exclude_unset=True)
        async with self._session_factory() as db:
            rule = await db.get(XPRule, rule_id)
            if rule is None:
                raise NotFoundError("XP rule", rule_id)

            for field, value in changes.items():
                setattr(rule, field, value)
            rule.updated_at = utcnow()

            log_admin_action(db, admin_id, "xp_rule_update", {
                "rule_id": rule_id,
                "action_type": rule.action_type,
                "updates": changes,
            })
            await db.commit()
        return rule
