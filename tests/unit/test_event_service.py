"""Tests for seasonal events and the XP multiplier they drive."""

import pytest
from sqlalchemy import select

from conftest import add_rows, set_setting, utc
from souk.db.models import AdminActionLog, SeasonalEvent
from souk.gamification.exceptions import NotFoundError
from souk.gamification.schemas import EventCreate, EventPatch


def _event(name: str, multiplier: float, start: float = -1, end: float = 1, **kw) -> SeasonalEvent:
    return SeasonalEvent(
        name=name,
        start_date=utc(days=start),
        end_date=utc(days=end),
        xp_multiplier=multiplier,
        **kw,
    )


class TestActiveMultiplier:
    @pytest.mark.asyncio
    async def test_highest_overlapping_event_wins(self, gam, seeded):
        await add_rows(seeded, _event("Spring Sale", 1.5), _event("Eid Double XP", 2.0))
        assert await gam.events.get_active_multiplier() == 2.0

    @pytest.mark.asyncio
    async def test_falls_back_to_global_setting(self, gam, seeded):
        assert await gam.events.get_active_multiplier() == 1.0
        await set_setting(seeded, "gamification_xp_multiplier", "1.25")
        assert await gam.events.get_active_multiplier() == 1.25

    @pytest.mark.asyncio
    async def test_ignores_finished_future_and_inactive(self, gam, seeded):
        await add_rows(
            seeded,
            _event("Past", 4.0, start=-10, end=-5),
            _event("Future", 4.0, start=2, end=5),
            _event("Paused", 4.0, is_active=False),
        )
        assert await gam.events.get_active_multiplier() == 1.0

    @pytest.mark.asyncio
    async def test_invalid_global_setting(self, gam, seeded):
        await set_setting(seeded, "gamification_xp_multiplier", "double")
        assert await gam.events.get_active_multiplier() == 1.0


class TestActiveEvents:
    @pytest.mark.asyncio
    async def test_empty_when_feature_off(self, gam, seeded):
        await add_rows(seeded, _event("Spring Sale", 1.5))
        assert await gam.events.get_active_events() == []

    @pytest.mark.asyncio
    async def test_running_events_highest_multiplier_first(self, gam, seeded):
        await set_setting(seeded, "gamification_seasonal_events_enabled", "true")
        await add_rows(
            seeded,
            _event("Spring Sale", 1.5),
            _event("Eid Double XP", 2.0),
            _event("Past", 3.0, start=-10, end=-5),
        )
        events = await gam.events.get_active_events()
        assert [e.name for e in events] == ["Eid Double XP", "Spring Sale"]

    @pytest.mark.asyncio
    async def test_badge_rewards(self, gam, seeded):
        await set_setting(seeded, "gamification_seasonal_events_enabled", "true")
        await add_rows(seeded, _event("Launch", 1.0, badge_rewards=["legend", "", 7]))
        rewards = await gam.events.get_active_badge_rewards()
        assert [slug for _, slug in rewards] == ["legend"]

    @pytest.mark.asyncio
    async def test_is_event_active(self, gam, seeded):
        await add_rows(seeded, _event("Now", 1.0), _event("Later", 1.0, start=3, end=4))
        events = {e.name: e.id for e in await gam.events.get_all_events()}
        assert await gam.events.is_event_active(events["Now"]) is True
        assert await gam.events.is_event_active(events["Later"]) is False
        assert await gam.events.is_event_active(9999) is False


class TestAdmin:
    @pytest.mark.asyncio
    async def test_create_defaults(self, gam, users, seeded):
        event = await gam.events.create_event(
            EventCreate(name="White Friday", start_date=utc(), end_date=utc(days=3)),
            users["root"].id,
        )
        assert event.id is not None
        assert event.xp_multiplier == 1.0
        assert event.is_active is True
        assert event.badge_rewards == []

        async with seeded() as db:
            log = (await db.execute(select(AdminActionLog))).scalar_one()
        assert log.action_type == "event_create"

    def test_window_must_be_ordered(self):
        with pytest.raises(ValueError):
            EventCreate(name="Backwards", start_date=utc(days=2), end_date=utc())

    @pytest.mark.asyncio
    async def test_update_and_delete(self, gam, users, seeded):
        root = users["root"].id
        event = await gam.events.create_event(
            EventCreate(name="Weekend", start_date=utc(days=-1), end_date=utc(days=1), xp_multiplier=1.5),
            root,
        )
        assert await gam.events.get_active_multiplier() == 1.5

        updated = await gam.events.update_event(event.id, EventPatch(xp_multiplier=3.0), root)
        assert updated.xp_multiplier == 3.0
        assert updated.name == "Weekend"
        assert await gam.events.get_active_multiplier() == 3.0

        await gam.events.delete_event(event.id, root)
        assert await gam.events.get_all_events() == []
        assert await gam.events.get_active_multiplier() == 1.0

        async with seeded() as db:
            actions = (await db.execute(
                select(AdminActionLog.action_type).order_by(AdminActionLog.id)
            )).scalars().all()
        assert actions == ["event_create", "event_update", "event_delete"]

    @pytest.mark.asyncio
    async def test_missing_event(self, gam, users):
        with pytest.raises(NotFoundError):
            await gam.events.update_event(404, EventPatch(name="x"), users["root"].id)
        with pytest.raises(NotFoundError):
            await gam.events.delete_event(404, users["root"].id)

    @pytest.mark.asyncio
    async def test_all_events_newest_start_first(self, gam, seeded):
        await add_rows(seeded, _event("Old", 1.0, start=-30, end=-20), _event("New", 1.0))
        assert [e.name for e in await gam.events.get_all_events()] == ["New", "Old"]
