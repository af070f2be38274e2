"""Periodic trigger for scheduled health checks."""

from __future__ import annotations

import asyncio

import structlog

from healthwatch.health.scheduler import ScheduledRunReport, TieredScheduler

logger = structlog.stdlib.get_logger()


class HealthCheckLoop:
    """Background task that invokes the scheduler once per interval.

    The scheduler decides which tiers are actually due; this loop only
    provides the heartbeat.

    Usage::

        loop = HealthCheckLoop(scheduler, interval_secs=60)
        await loop.start()
        # ...
        await loop.stop()
    """

    def __init__(self, scheduler: TieredScheduler, interval_secs: float = 60.0) -> None:
        self._scheduler = scheduler
        self._interval_secs = interval_secs
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._runs = 0
        self._last_report: ScheduledRunReport | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def runs(self) -> int:
        return self._runs

    @property
    def last_report(self) -> ScheduledRunReport | None:
        return self._last_report

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("health_loop_started", interval_secs=self._interval_secs)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("health_loop_stopped", runs=self._runs)

    async def tick(self) -> ScheduledRunReport:
        """Run one scheduled pass immediately."""
        report = await self._scheduler.run_scheduled_health_checks()
        self._runs += 1
        self._last_report = report
        return report

    # ── Internal loop ───────────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                return
            except Exception:
                logger.exception("health_loop_error")
            await asyncio.sleep(self._interval_secs)
