from __future__ import annotations

"""Collapse monitoring samples to one current row per entity."""

import logging
from typing import Any, Callable, Iterable, Mapping

from .kinds import MetricKind, descriptor_for, is_chartable
from .rates import as_float, network_rates
from .timestamps import parse_timestamp_ms

logger = logging.getLogger(__name__)

RawSample = Mapping[str, Any]


def latest_per_entity(
    samples: Iterable[RawSample],
    entity_of: Callable[[RawSample], str | None],
) -> dict[str, RawSample]:
    """Return ``{entity: sample}`` keeping the greatest ``scan_timestamp``.

    On equal timestamps the later sample in iteration order wins. Callers
    should not rely on that tie-break.
    """

    best: dict[str, tuple[int, RawSample]] = {}
    for sample in samples:
        entity = entity_of(sample)
        if entity is None:
            continue
        ts = parse_timestamp_ms(sample.get("scan_timestamp"))
        if ts is None:
            logger.debug(
                "sync.dedup.skip_unparseable",
                extra={"entity": entity, "scan_timestamp": sample.get("scan_timestamp")},
            )
            continue
        current = best.get(entity)
        if current is None or ts >= current[0]:
            best[entity] = (ts, sample)
    return {entity: sample for entity, (_, sample) in best.items()}


def _snapshot_row_visible(kind: MetricKind, sample: RawSample) -> bool:
    if not is_chartable(kind, sample):
        return False
    if kind is MetricKind.NETWORK and as_float(sample.get("time_delta_seconds")) <= 0:
        return False
    return True


def _order(kind: MetricKind, rows: dict[str, RawSample]) -> dict[str, RawSample]:
    if kind is MetricKind.NETWORK:
        ranked = sorted(rows.items(), key=lambda item: -network_rates(item[1])["total"])
        return dict(ranked)
    if kind is MetricKind.STORAGE_IO:
        return dict(sorted(rows.items()))
    return rows


class SnapshotStore:
    """Latest raw sample per entity for each kind, backing the table views."""

    def __init__(self) -> None:
        self._latest: dict[MetricKind, dict[str, RawSample]] = {}

    def replace(self, kind: MetricKind, samples: Iterable[RawSample]) -> None:
        self._latest[kind] = latest_per_entity(samples, descriptor_for(kind).entity_of)

    def merge(self, kind: MetricKind, samples: Iterable[RawSample]) -> None:
        current = self._latest.get(kind, {})
        combined = list(current.values()) + list(samples)
        self._latest[kind] = latest_per_entity(combined, descriptor_for(kind).entity_of)

    def latest(self, kind: MetricKind) -> dict[str, RawSample]:
        """Visible rows for ``kind`` in display order."""

        rows = {
            entity: sample
            for entity, sample in self._latest.get(kind, {}).items()
            if _snapshot_row_visible(kind, sample)
        }
        return _order(kind, rows)

    def clear(self) -> None:
        self._latest.clear()


__all__ = ["RawSample", "SnapshotStore", "latest_per_entity"]
