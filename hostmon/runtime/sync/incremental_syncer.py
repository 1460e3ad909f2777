from __future__ import annotations

"""Watermark-driven "since last seen" refresh."""

import logging
from typing import Any, Awaitable, Callable, Iterable

from . import metrics as sync_metrics
from .cycle import HISTORICAL, INCREMENTAL, CycleReport, settle
from .dedup import RawSample, SnapshotStore
from .historical_loader import HistoricalLoader, build_series_events, order_samples
from .kinds import ALL_KINDS, MetricKind
from .monitoring_client import MonitoringClient
from .series_buffer import MetricStreamTable
from .watermark import WatermarkStore
from .windows import TimeWindowSpec

logger = logging.getLogger(__name__)


class IncrementalSyncer:
    """Append records newer than each kind's watermark.

    Kinds that have never been synced in the current context are handed to
    the :class:`HistoricalLoader` instead.
    """

    def __init__(
        self,
        client: MonitoringClient,
        table: MetricStreamTable,
        watermarks: WatermarkStore,
        snapshots: SnapshotStore,
        historical: HistoricalLoader,
    ) -> None:
        self.client = client
        self.table = table
        self.watermarks = watermarks
        self.snapshots = snapshots
        self.historical = historical

    def _request(
        self, host: str, kind: MetricKind, spec: TimeWindowSpec
    ) -> tuple[str, Awaitable[list[dict[str, Any]]]]:
        since = self.watermarks.get(kind)
        if since is None:
            return HISTORICAL, self.historical.fetch_kind(host, kind, spec)
        return INCREMENTAL, self.client.query(host, kind, since=since, limit=spec.record_limit)

    def apply_kind(self, kind: MetricKind, samples: Iterable[RawSample]) -> int:
        """Append samples newer than the watermark; return the points accepted."""

        mark = self.watermarks.get_ms(kind)
        fresh = [
            (ts, sample)
            for ts, sample in order_samples(kind, samples)
            if mark is None or ts > mark
        ]
        if not fresh:
            return 0
        applied = self.table.apply_all(build_series_events(kind, fresh, replace=False))
        self.snapshots.merge(kind, [sample for _, sample in fresh])
        newest_ms, newest = fresh[-1]
        self.watermarks.set(kind, str(newest["scan_timestamp"]))
        sync_metrics.observe_watermark(kind.value, newest_ms)
        sync_metrics.observe_series_points(kind.value, self.table.point_count(kind))
        return applied

    async def sync(
        self,
        host: str,
        spec: TimeWindowSpec,
        *,
        kinds: Iterable[MetricKind] = ALL_KINDS,
        generation: int = 0,
        is_current: Callable[[int], bool] = lambda generation: True,
    ) -> CycleReport:
        outcomes = await settle({kind: self._request(host, kind, spec) for kind in kinds})
        report = CycleReport(mode=INCREMENTAL, generation=generation, outcomes=outcomes)
        if not is_current(generation):
            report.discarded = True
            sync_metrics.observe_stale_response(INCREMENTAL)
            logger.debug("sync.incremental.stale", extra={"host": host, "generation": generation})
            return report
        for kind, outcome in outcomes.items():
            if not outcome.ok:
                continue
            if outcome.mode == HISTORICAL:
                report.applied_points += self.historical.apply_kind(kind, outcome.samples)
            else:
                report.applied_points += self.apply_kind(kind, outcome.samples)
        logger.debug(
            "sync.incremental.complete",
            extra={"host": host, "generation": generation, "points": report.applied_points},
        )
        return report


__all__ = ["IncrementalSyncer"]
