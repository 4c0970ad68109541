"""Tests for the in-process leaderboard scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from souk.gamification.scheduler import LeaderboardScheduler


def _gate(enabled: bool = True, interval: int = 3600) -> MagicMock:
    gate = MagicMock()
    gate.is_enabled = AsyncMock(return_value=enabled)
    gate.get_leaderboard_update_interval = AsyncMock(return_value=interval)
    return gate


def _engine(side_effect=None) -> MagicMock:
    engine = MagicMock()
    engine.update_all_leaderboards = AsyncMock(side_effect=side_effect, return_value={})
    return engine


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_rebuilds_when_enabled(self):
        engine = _engine()
        await LeaderboardScheduler(engine, _gate()).run_once()
        engine.update_all_leaderboards.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skips_when_master_switch_off(self):
        engine = _engine()
        await LeaderboardScheduler(engine, _gate(enabled=False)).run_once()
        engine.update_all_leaderboards.assert_not_awaited()


class TestLoop:
    @pytest.mark.asyncio
    async def test_start_runs_first_cycle_and_stop_cancels(self):
        ran = asyncio.Event()
        engine = _engine(side_effect=lambda: ran.set())
        scheduler = LeaderboardScheduler(engine, _gate(), initial_delay=0)

        scheduler.start()
        assert scheduler.running is True
        await asyncio.wait_for(ran.wait(), timeout=2)

        await scheduler.stop()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        scheduler = LeaderboardScheduler(_engine(), _gate(), initial_delay=60)
        scheduler.start()
        task = scheduler._task
        scheduler.start()
        assert scheduler._task is task
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failed_cycle_does_not_stop_the_loop(self):
        calls = 0
        second = asyncio.Event()

        def rebuild():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("db down")
            second.set()

        gate = _gate(interval=0)
        scheduler = LeaderboardScheduler(_engine(side_effect=rebuild), gate, initial_delay=0)
        scheduler.start()
        await asyncio.wait_for(second.wait(), timeout=2)
        await scheduler.stop()

        assert calls >= 2
        gate.get_leaderboard_update_interval.assert_awaited()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await LeaderboardScheduler(_engine(), _gate()).stop()
