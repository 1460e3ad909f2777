from __future__ import annotations

"""Read/control surface handed to the rendering layer."""

import asyncio
from typing import Any, Awaitable, Callable

import httpx

from hostmon.foundation.config import UnifiedConfig

from .configuration import get_unified_config
from .cycle import CycleReport
from .dedup import RawSample, SnapshotStore
from .exceptions import MonitoringUnavailableError
from .historical_loader import HistoricalLoader
from .incremental_syncer import IncrementalSyncer
from .kinds import MetricKind, coerce_kind
from .monitoring_client import MonitoringClient
from .refresh_scheduler import RefreshScheduler, SchedulerState
from .series_buffer import MetricStreamTable
from .watermark import WatermarkStore
from .windows import DEFAULT_REFRESH_INTERVAL, TimeWindowSpec


class MetricsDashboard:
    """Wire the stores, loaders and scheduler for one dashboard view.

    Example
    -------
    >>> async with MetricsDashboard.from_config() as dash:  # doctest: +SKIP
    ...     await dash.select_host("https://hv01:5001/api")
    ...     dash.get_series("network", "ixgbe0", "rx")
    """

    def __init__(
        self,
        client: MonitoringClient,
        *,
        spec: TimeWindowSpec | None = None,
        refresh_interval: int = DEFAULT_REFRESH_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_error: Callable[[MonitoringUnavailableError], None] | None = None,
    ) -> None:
        spec = spec or TimeWindowSpec()
        self.client = client
        self.watermarks = WatermarkStore()
        self.table = MetricStreamTable(spec.capacity)
        self.snapshots = SnapshotStore()
        self.historical = HistoricalLoader(client, self.table, self.watermarks, self.snapshots)
        self.incremental = IncrementalSyncer(
            client, self.table, self.watermarks, self.snapshots, self.historical
        )
        self.scheduler = RefreshScheduler(
            self.historical,
            self.incremental,
            watermarks=self.watermarks,
            table=self.table,
            snapshots=self.snapshots,
            spec=spec,
            refresh_interval=refresh_interval,
            sleep=sleep,
            on_error=on_error,
        )

    @classmethod
    def from_config(
        cls,
        config: UnifiedConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> "MetricsDashboard":
        unified = config or get_unified_config()
        client = MonitoringClient.from_config(unified.monitoring, transport=transport)
        spec = TimeWindowSpec(unified.dashboard.window, unified.dashboard.resolution)
        kwargs.setdefault("refresh_interval", unified.dashboard.refresh_interval_seconds)
        return cls(client, spec=spec, **kwargs)

    # read surface -------------------------------------------------
    def get_series(self, kind: MetricKind | str, entity_key: str, channel: str) -> list[list[int | float]]:
        return self.table.series(coerce_kind(kind), entity_key, channel)

    def get_latest_snapshot(self, kind: MetricKind | str) -> dict[str, RawSample]:
        return self.snapshots.latest(coerce_kind(kind))

    def entities(self, kind: MetricKind | str) -> list[str]:
        return self.table.entities(coerce_kind(kind))

    def channels(self, kind: MetricKind | str, entity_key: str) -> list[str]:
        return self.table.channels(coerce_kind(kind), entity_key)

    def watermark(self, kind: MetricKind | str) -> str | None:
        return self.watermarks.get(kind)

    @property
    def state(self) -> SchedulerState:
        return self.scheduler.state

    @property
    def generation(self) -> int:
        return self.scheduler.generation

    @property
    def error(self) -> str | None:
        return self.scheduler.error

    @property
    def host(self) -> str | None:
        return self.scheduler.host

    @property
    def window_spec(self) -> TimeWindowSpec:
        return self.scheduler.spec

    @property
    def refresh_interval(self) -> int:
        return self.scheduler.refresh_interval

    # control surface ----------------------------------------------
    async def select_host(self, host: str | None) -> CycleReport | None:
        return await self.scheduler.select_host(host)

    async def set_window(self, window: str) -> CycleReport | None:
        return await self.scheduler.set_window(window)

    async def set_resolution(self, resolution: str) -> CycleReport | None:
        return await self.scheduler.set_resolution(resolution)

    def set_refresh_interval(self, seconds: int) -> None:
        self.scheduler.set_refresh_interval(seconds)

    async def trigger_manual_refresh(self) -> CycleReport | None:
        return await self.scheduler.trigger_manual_refresh()

    async def aclose(self) -> None:
        await self.scheduler.aclose()
        await self.client.aclose()

    async def __aenter__(self) -> "MetricsDashboard":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


__all__ = ["MetricsDashboard"]
