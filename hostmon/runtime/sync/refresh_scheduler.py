from __future__ import annotations

"""State machine driving historical loads and periodic incremental refresh.

``IDLE`` (no host) moves to ``AWAITING_INITIAL_LOAD`` whenever a host is
selected or the time window changes. Once the historical fan-out over every
kind settles, successful or not, the scheduler becomes ``ACTIVE`` and runs
incremental cycles on the configured interval.

Every context change bumps ``generation``. Cycles remember the generation
they were issued under; their results are dropped on arrival when it no
longer matches. At most one cycle per generation is in flight: a cycle that
would overlap another is dropped, not queued.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable

from . import metrics as sync_metrics
from .cycle import HISTORICAL, INCREMENTAL, CycleReport
from .dedup import SnapshotStore
from .exceptions import MonitoringUnavailableError
from .historical_loader import HistoricalLoader
from .incremental_syncer import IncrementalSyncer
from .series_buffer import MetricStreamTable
from .watermark import WatermarkStore
from .windows import DEFAULT_REFRESH_INTERVAL, TimeWindowSpec, validate_refresh_interval

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    AWAITING_INITIAL_LOAD = "awaiting_initial_load"
    ACTIVE = "active"

    def __str__(self) -> str:
        return self.value


class RefreshScheduler:
    """Own the historical to incremental transition for one dashboard."""

    def __init__(
        self,
        historical: HistoricalLoader,
        incremental: IncrementalSyncer,
        *,
        watermarks: WatermarkStore,
        table: MetricStreamTable,
        snapshots: SnapshotStore,
        spec: TimeWindowSpec | None = None,
        refresh_interval: int = DEFAULT_REFRESH_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_error: Callable[[MonitoringUnavailableError], None] | None = None,
    ) -> None:
        self.historical = historical
        self.incremental = incremental
        self.watermarks = watermarks
        self.table = table
        self.snapshots = snapshots
        self.spec = spec or TimeWindowSpec()
        self.refresh_interval = validate_refresh_interval(refresh_interval)
        self.state = SchedulerState.IDLE
        self.generation = 0
        self.host: str | None = None
        self.error: str | None = None
        self._sleep = sleep
        self._on_error = on_error
        self._in_flight: int | None = None
        self._timer: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    # --------------------------------------------------------------
    async def select_host(self, host: str | None) -> CycleReport | None:
        """Switch to ``host`` and run its historical load.

        ``None`` clears the selection and returns to ``IDLE``.
        """

        if not host:
            self.host = None
            self._reset_context(SchedulerState.IDLE)
            return None
        self.host = host
        self._reset_context(SchedulerState.AWAITING_INITIAL_LOAD)
        return await self._run_cycle(HISTORICAL)

    async def set_window(self, window: str) -> CycleReport | None:
        return await self._change_spec(self.spec.with_window(window))

    async def set_resolution(self, resolution: str) -> CycleReport | None:
        return await self._change_spec(self.spec.with_resolution(resolution))

    def set_refresh_interval(self, seconds: int) -> None:
        """Change the auto-refresh interval; ``0`` turns it off."""

        self.refresh_interval = validate_refresh_interval(seconds)
        self._cancel_timer()
        if self.state is SchedulerState.ACTIVE:
            self._start_timer()

    async def trigger_manual_refresh(self) -> CycleReport | None:
        if self.state is SchedulerState.IDLE:
            return None
        if self.state is SchedulerState.AWAITING_INITIAL_LOAD:
            return await self._run_cycle(HISTORICAL)
        return await self._run_cycle(INCREMENTAL)

    async def wait(self) -> None:
        """Wait for cycles started by the timer to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        self.generation += 1
        self.state = SchedulerState.IDLE
        timer = self._timer
        self._cancel_timer()
        pending = list(self._tasks)
        if timer is not None:
            pending.append(timer)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # --------------------------------------------------------------
    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    async def _change_spec(self, spec: TimeWindowSpec) -> CycleReport | None:
        self.spec = spec
        if self.host is None:
            self.table.reset_all(spec.capacity)
            return None
        self._reset_context(SchedulerState.AWAITING_INITIAL_LOAD)
        return await self._run_cycle(HISTORICAL)

    def _reset_context(self, state: SchedulerState) -> None:
        self.generation += 1
        self._cancel_timer()
        self.watermarks.reset_all()
        self.table.reset_all(self.spec.capacity)
        self.snapshots.clear()
        self.error = None
        self.state = state
        logger.info(
            "sync.context.reset",
            extra={
                "host": self.host,
                "window": self.spec.window,
                "resolution": self.spec.resolution,
                "generation": self.generation,
            },
        )

    async def _run_cycle(self, mode: str) -> CycleReport | None:
        generation = self.generation
        host = self.host
        spec = self.spec
        if host is None:
            return None
        if self._in_flight == generation:
            sync_metrics.observe_cycle_dropped(mode)
            logger.debug("sync.cycle.dropped", extra={"mode": mode, "generation": generation})
            return None

        self._in_flight = generation
        sync_metrics.observe_cycle_start()
        try:
            if mode == HISTORICAL:
                report = await self.historical.load(
                    host, spec, generation=generation, is_current=self.is_current
                )
            else:
                report = await self.incremental.sync(
                    host, spec, generation=generation, is_current=self.is_current
                )
        finally:
            sync_metrics.observe_cycle_end()
            if self._in_flight == generation:
                self._in_flight = None

        if report.discarded:
            return report
        self._record_outcome(host, report)
        if mode == HISTORICAL and self.state is SchedulerState.AWAITING_INITIAL_LOAD:
            self.state = SchedulerState.ACTIVE
            logger.info("sync.scheduler.active", extra={"host": host, "generation": generation})
            self._start_timer()
        return report

    def _record_outcome(self, host: str, report: CycleReport) -> None:
        if report.all_failed:
            err = MonitoringUnavailableError(
                host,
                {kind.value: outcome.error or "" for kind, outcome in report.outcomes.items()},
            )
            self.error = str(err)
            logger.error(
                "sync.cycle.unavailable",
                extra={"host": host, "mode": report.mode, "failures": err.failures},
            )
            if self._on_error is not None:
                self._on_error(err)
        elif report.outcomes:
            self.error = None

    # --------------------------------------------------------------
    def _start_timer(self) -> None:
        self._cancel_timer()
        if self.state is not SchedulerState.ACTIVE or self.refresh_interval <= 0:
            return
        self._timer = asyncio.create_task(self._tick(self.generation, self.refresh_interval))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _tick(self, generation: int, interval: int) -> None:
        while self.is_current(generation) and self.state is SchedulerState.ACTIVE:
            await self._sleep(interval)
            if not self.is_current(generation):
                return
            self._spawn(self._run_cycle(INCREMENTAL))

    def _spawn(self, coro: Awaitable[CycleReport | None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_task_failure)
        return task

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("sync.cycle.crashed", exc_info=exc)


__all__ = ["RefreshScheduler", "SchedulerState"]
