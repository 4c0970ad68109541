"""In-process recurring leaderboard rebuild."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from souk.gamification.leaderboard_service import LeaderboardEngine
from souk.gamification.settings_gate import SettingsGate

logger = logging.getLogger(__name__)


class LeaderboardScheduler:
    """Rebuilds leaderboards on a timer whose interval is re-read every cycle."""

    def __init__(
        self,
        leaderboards: LeaderboardEngine,
        gate: SettingsGate,
        initial_delay: float = 30.0,
    ) -> None:
        self.leaderboards = leaderboards
        self.gate = gate
        self.initial_delay = initial_delay
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="leaderboard-scheduler")
        logger.info("Leaderboard scheduler started (first run in %ss)", self.initial_delay)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Leaderboard scheduler stopped")

    async def run_once(self) -> None:
        if not await self.gate.is_enabled():
            logger.debug("Gamification disabled, skipping leaderboard cycle")
            return
        await self.leaderboards.update_all_leaderboards()

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Leaderboard cycle failed")

            try:
                interval = await self.gate.get_leaderboard_update_interval()
            except Exception:
                logger.exception("Could not read leaderboard interval, retrying in 60s")
                interval = 60
            await asyncio.sleep(interval)
