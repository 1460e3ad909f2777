from __future__ import annotations

"""Full-window backfill of every metric kind."""

import logging
from typing import Any, Awaitable, Callable, Iterable, Sequence

from . import metrics as sync_metrics
from .cycle import HISTORICAL, CycleReport, settle
from .dedup import RawSample, SnapshotStore
from .kinds import ALL_KINDS, MetricKind, descriptor_for, is_chartable
from .monitoring_client import MonitoringClient
from .rates import derive_channel_values
from .series_buffer import MetricStreamTable, SeriesEvent
from .timestamps import parse_timestamp_ms
from .watermark import WatermarkStore
from .windows import TimeWindowSpec

logger = logging.getLogger(__name__)

TimedSample = tuple[int, RawSample]


def order_samples(kind: MetricKind, samples: Iterable[RawSample]) -> list[TimedSample]:
    """Return chartable samples as ``(timestamp_ms, sample)`` sorted ascending.

    Samples with a missing or unparseable ``scan_timestamp`` are skipped. Two
    samples for the same entity and timestamp collapse to the last one seen.
    """

    desc = descriptor_for(kind)
    collapsed: dict[tuple[str, int], RawSample] = {}
    for sample in samples:
        if not is_chartable(kind, sample):
            continue
        entity = desc.entity_of(sample)
        if entity is None:
            continue
        ts = parse_timestamp_ms(sample.get("scan_timestamp"))
        if ts is None:
            logger.debug(
                "sync.sample.skip_unparseable",
                extra={"kind": kind.value, "scan_timestamp": sample.get("scan_timestamp")},
            )
            continue
        key = (entity, ts)
        collapsed.pop(key, None)
        collapsed[key] = sample
    return sorted(((ts, sample) for (_, ts), sample in collapsed.items()), key=lambda item: item[0])


def build_series_events(
    kind: MetricKind, timed: Sequence[TimedSample], *, replace: bool
) -> list[SeriesEvent]:
    """Group ordered samples into one :class:`SeriesEvent` per channel."""

    grouped: dict[tuple[str, str], list[tuple[int, float]]] = {}
    for ts, sample in timed:
        for entity, values in derive_channel_values(kind, sample).items():
            for channel, value in values.items():
                grouped.setdefault((entity, channel), []).append((ts, value))
    return [
        SeriesEvent(kind=kind, entity_key=entity, channel=channel, points=tuple(points), replace=replace)
        for (entity, channel), points in grouped.items()
    ]


def newest_timestamp(timed: Sequence[TimedSample]) -> str | None:
    if not timed:
        return None
    return str(timed[-1][1]["scan_timestamp"])


class HistoricalLoader:
    """Replace each kind's series with the full configured window."""

    def __init__(
        self,
        client: MonitoringClient,
        table: MetricStreamTable,
        watermarks: WatermarkStore,
        snapshots: SnapshotStore,
    ) -> None:
        self.client = client
        self.table = table
        self.watermarks = watermarks
        self.snapshots = snapshots

    def fetch_kind(
        self, host: str, kind: MetricKind, spec: TimeWindowSpec
    ) -> Awaitable[list[dict[str, Any]]]:
        return self.client.query(
            host, kind, since=spec.since_cutoff(), limit=spec.record_limit
        )

    def apply_kind(self, kind: MetricKind, samples: Iterable[RawSample]) -> int:
        """Reinitialise ``kind`` from ``samples``; return the points stored."""

        timed = order_samples(kind, samples)
        self.table.discard_kind(kind)
        applied = self.table.apply_all(build_series_events(kind, timed, replace=True))
        self.snapshots.replace(kind, [sample for _, sample in timed])
        latest = newest_timestamp(timed)
        if latest is not None:
            self.watermarks.set(kind, latest)
            sync_metrics.observe_watermark(kind.value, timed[-1][0])
        sync_metrics.observe_series_points(kind.value, self.table.point_count(kind))
        return applied

    async def load(
        self,
        host: str,
        spec: TimeWindowSpec,
        *,
        kinds: Iterable[MetricKind] = ALL_KINDS,
        generation: int = 0,
        is_current: Callable[[int], bool] = lambda generation: True,
    ) -> CycleReport:
        """Fetch every kind in parallel and apply the successful ones.

        Nothing is applied when ``is_current(generation)`` is false once the
        fan-out settles.
        """

        logger.info(
            "sync.historical.start",
            extra={"host": host, "window": spec.window, "resolution": spec.resolution, "generation": generation},
        )
        outcomes = await settle(
            {kind: (HISTORICAL, self.fetch_kind(host, kind, spec)) for kind in kinds}
        )
        report = CycleReport(mode=HISTORICAL, generation=generation, outcomes=outcomes)
        if not is_current(generation):
            report.discarded = True
            sync_metrics.observe_stale_response(HISTORICAL)
            logger.debug("sync.historical.stale", extra={"host": host, "generation": generation})
            return report
        for kind, outcome in outcomes.items():
            if outcome.ok:
                report.applied_points += self.apply_kind(kind, outcome.samples)
        logger.info(
            "sync.historical.complete",
            extra={
                "host": host,
                "generation": generation,
                "points": report.applied_points,
                "failed": [kind.value for kind in report.failed_kinds],
            },
        )
        return report


__all__ = [
    "HistoricalLoader",
    "build_series_events",
    "newest_timestamp",
    "order_samples",
]
