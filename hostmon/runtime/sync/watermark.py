from __future__ import annotations

"""Per-kind "last synced" cursors for incremental refresh.

A watermark records the newest ``scan_timestamp`` already folded into the
series of a metric kind. Incremental queries ask for records ``since`` that
cursor; ``None`` means the kind has never been synced in the current context
and needs a full backfill instead.
"""

from dataclasses import dataclass
from typing import Dict, Iterable

from .kinds import ALL_KINDS, MetricKind, coerce_kind
from .timestamps import parse_timestamp_ms


@dataclass(frozen=True)
class Watermark:
    timestamp: str
    ms: int


class WatermarkStore:
    """Monotonic per-kind timestamp cursors."""

    def __init__(self, kinds: Iterable[MetricKind] = ALL_KINDS) -> None:
        self._kinds = tuple(kinds)
        self._wm: Dict[MetricKind, Watermark] = {}

    def get(self, kind: MetricKind | str) -> str | None:
        mark = self._wm.get(coerce_kind(kind))
        return mark.timestamp if mark is not None else None

    def get_ms(self, kind: MetricKind | str) -> int | None:
        mark = self._wm.get(coerce_kind(kind))
        return mark.ms if mark is not None else None

    def set(self, kind: MetricKind | str, timestamp: str) -> bool:
        """Advance ``kind`` to ``timestamp``; return ``False`` when it would not move forward."""

        ms = parse_timestamp_ms(timestamp)
        if ms is None:
            raise ValueError(f"unparseable watermark timestamp: {timestamp!r}")
        key = coerce_kind(kind)
        cur = self._wm.get(key)
        if cur is not None and ms <= cur.ms:
            return False
        self._wm[key] = Watermark(timestamp=str(timestamp), ms=ms)
        return True

    def is_synced(self, kind: MetricKind | str) -> bool:
        return coerce_kind(kind) in self._wm

    def reset_all(self) -> None:
        """Forget every cursor (context or window change)."""

        self._wm.clear()

    def snapshot(self) -> dict[MetricKind, str | None]:
        return {kind: self.get(kind) for kind in self._kinds}


__all__ = ["Watermark", "WatermarkStore"]
