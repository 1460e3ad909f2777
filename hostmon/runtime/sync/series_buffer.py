from __future__ import annotations

"""Bounded sliding-window series and the table that owns them."""

from dataclasses import dataclass, field
from typing import Iterable, Sequence

import numpy as np

from .kinds import MetricKind, MetricStreamID

SeriesPoint = tuple[int, float]


class SeriesBuffer:
    """Fixed-length buffer for ``(timestamp_ms, value)`` points.

    Points are stored in two ``numpy`` columns used as a ring. Consumers can
    append new points, request the ordered contents, or replace the buffer
    with a new set of points. Ordering is always oldest to newest and never
    more than ``capacity`` points are retained.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            msg = "SeriesBuffer capacity must be a positive integer"
            raise ValueError(msg)
        self.capacity = capacity
        self._ts = np.zeros(capacity, dtype=np.int64)
        self._values = np.zeros(capacity, dtype=np.float64)
        self._offset = 0
        self._filled = 0

    def __len__(self) -> int:
        return self._filled

    def _push(self, timestamp: int, value: float) -> None:
        self._ts[self._offset] = timestamp
        self._values[self._offset] = value
        self._offset = (self._offset + 1) % self.capacity
        if self._filled < self.capacity:
            self._filled += 1

    def append(self, points: Iterable[SeriesPoint]) -> int:
        """Append ``points`` overwriting the oldest entries.

        A point older than the current tail is dropped. Returns the number
        of points accepted.
        """

        accepted = 0
        tail = self.last_timestamp()
        for ts, value in points:
            ts = int(ts)
            if tail is not None and ts < tail:
                continue
            self._push(ts, float(value))
            tail = ts
            accepted += 1
        return accepted

    def replace(self, points: Sequence[SeriesPoint]) -> None:
        """Replace contents with the newest ``capacity`` of ``points``."""

        ordered = sorted(((int(ts), float(v)) for ts, v in points), key=lambda p: p[0])
        trimmed = ordered[-self.capacity :]
        self._ts = np.zeros(self.capacity, dtype=np.int64)
        self._values = np.zeros(self.capacity, dtype=np.float64)
        for idx, (ts, value) in enumerate(trimmed):
            self._ts[idx] = ts
            self._values[idx] = value
        self._filled = len(trimmed)
        self._offset = len(trimmed) % self.capacity

    def clear(self) -> None:
        self._offset = 0
        self._filled = 0

    def _order(self) -> np.ndarray:
        if self._filled < self.capacity:
            return np.arange(self._filled)
        return (np.arange(self.capacity) + self._offset) % self.capacity

    def timestamps(self) -> np.ndarray:
        return self._ts[self._order()]

    def values(self) -> np.ndarray:
        return self._values[self._order()]

    def items(self) -> list[list[int | float]]:
        """Return ``[[timestamp_ms, value], ...]`` ordered oldest to newest."""

        idx = self._order()
        return [[int(ts), float(v)] for ts, v in zip(self._ts[idx], self._values[idx])]

    def latest(self) -> SeriesPoint | None:
        if self._filled == 0:
            return None
        idx = (self._offset - 1) % self.capacity
        return int(self._ts[idx]), float(self._values[idx])

    def last_timestamp(self) -> int | None:
        point = self.latest()
        return point[0] if point is not None else None

    @property
    def nbytes(self) -> int:
        return self._ts.nbytes + self._values.nbytes


@dataclass(frozen=True)
class SeriesEvent:
    """One batch of points for a single channel.

    ``replace`` events substitute the channel wholesale (historical load);
    otherwise the points are appended and trimmed (incremental sync).
    """

    kind: MetricKind
    entity_key: str
    channel: str
    points: tuple[SeriesPoint, ...]
    replace: bool = False


@dataclass
class MetricStream:
    id: MetricStreamID
    capacity: int
    channels: dict[str, SeriesBuffer] = field(default_factory=dict)

    def channel(self, name: str) -> SeriesBuffer:
        buf = self.channels.get(name)
        if buf is None:
            buf = SeriesBuffer(self.capacity)
            self.channels[name] = buf
        return buf

    def point_count(self) -> int:
        return sum(len(buf) for buf in self.channels.values())


class MetricStreamTable:
    """All chart series of the current context keyed by :class:`MetricStreamID`.

    The table is only mutated through :meth:`apply`, :meth:`discard_kind` and
    :meth:`reset_all`. Streams are created lazily the first time an entity
    key is observed.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self.capacity = capacity
        self._streams: dict[MetricStreamID, MetricStream] = {}

    def apply(self, event: SeriesEvent) -> int:
        sid = MetricStreamID(event.kind, event.entity_key)
        stream = self._streams.get(sid)
        if stream is None:
            stream = MetricStream(id=sid, capacity=self.capacity)
            self._streams[sid] = stream
        buf = stream.channel(event.channel)
        if event.replace:
            buf.replace(event.points)
            return len(buf)
        return buf.append(event.points)

    def apply_all(self, events: Iterable[SeriesEvent]) -> int:
        return sum(self.apply(event) for event in events)

    def discard_kind(self, kind: MetricKind) -> None:
        for sid in [sid for sid in self._streams if sid.kind is kind]:
            del self._streams[sid]

    def reset_all(self, capacity: int | None = None) -> None:
        if capacity is not None:
            if capacity <= 0:
                raise ValueError("capacity must be a positive integer")
            self.capacity = capacity
        self._streams.clear()

    def get(self, kind: MetricKind, entity_key: str) -> MetricStream | None:
        return self._streams.get(MetricStreamID(kind, entity_key))

    def series(self, kind: MetricKind, entity_key: str, channel: str) -> list[list[int | float]]:
        stream = self.get(kind, entity_key)
        if stream is None:
            return []
        buf = stream.channels.get(channel)
        return buf.items() if buf is not None else []

    def entities(self, kind: MetricKind) -> list[str]:
        return sorted(sid.entity_key for sid in self._streams if sid.kind is kind)

    def channels(self, kind: MetricKind, entity_key: str) -> list[str]:
        stream = self.get(kind, entity_key)
        return list(stream.channels) if stream is not None else []

    def point_count(self, kind: MetricKind) -> int:
        return sum(s.point_count() for sid, s in self._streams.items() if sid.kind is kind)

    def __len__(self) -> int:
        return len(self._streams)


__all__ = [
    "MetricStream",
    "MetricStreamTable",
    "SeriesBuffer",
    "SeriesEvent",
    "SeriesPoint",
]
