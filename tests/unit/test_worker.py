"""Tests for the arq leaderboard job."""

import pytest

from conftest import set_profile, set_setting
from souk.workers.leaderboard_worker import WorkerSettings, rebuild_leaderboards


class TestRebuildJob:
    @pytest.mark.asyncio
    async def test_rebuilds_all_types(self, gam, users, seeded):
        await set_profile(seeded, users["alice"].id, total_xp=100, current_level=2)

        results = await rebuild_leaderboards({"gamification": gam})

        assert results["top_level"] == 1
        assert set(results) == {"top_level", "weekly_sellers", "monthly_creators", "top_helpers"}

    @pytest.mark.asyncio
    async def test_master_switch_off(self, gam, seeded):
        await set_setting(seeded, "gamification_enabled", "false")
        assert await rebuild_leaderboards({"gamification": gam}) is None

    def test_cron_registered(self):
        assert rebuild_leaderboards in WorkerSettings.functions
        assert len(WorkerSettings.cron_jobs) == 1
        assert WorkerSettings.max_jobs == 1
