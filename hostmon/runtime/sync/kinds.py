from __future__ import annotations

"""Metric kinds served by the monitoring API and their wire layout."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, NamedTuple

SINGLETON_ENTITY = "host"
CORE_ENTITY_PREFIX = "core-"


class MetricKind(str, Enum):
    NETWORK = "network"
    STORAGE_IO = "storage_io"
    ARC = "arc"
    CPU = "cpu"
    MEMORY = "memory"

    def __str__(self) -> str:
        return self.value


class MetricStreamID(NamedTuple):
    kind: MetricKind
    entity_key: str


@dataclass(frozen=True)
class KindDescriptor:
    """Where a kind lives in the monitoring API and what it charts.

    Attributes
    ----------
    path:
        Endpoint relative to the host base URL.
    array_key:
        Key under ``data`` holding the sample list.
    entity_field:
        Sample field naming the entity; ``None`` for host-wide kinds.
    channels:
        Channel names charted for each entity of this kind.
    query_flags:
        Extra query parameters asking for per-entity rows.
    """

    kind: MetricKind
    path: str
    array_key: str
    entity_field: str | None
    channels: tuple[str, ...]
    query_flags: tuple[tuple[str, str], ...] = ()

    def entity_of(self, sample: Mapping[str, Any]) -> str | None:
        if self.entity_field is None:
            return SINGLETON_ENTITY
        value = sample.get(self.entity_field)
        if value is None or value == "":
            return None
        return str(value)


DESCRIPTORS: dict[MetricKind, KindDescriptor] = {
    MetricKind.NETWORK: KindDescriptor(
        kind=MetricKind.NETWORK,
        path="monitoring/network/usage",
        array_key="usage",
        entity_field="link",
        channels=("rx", "tx", "total"),
        query_flags=(("per_interface", "true"),),
    ),
    MetricKind.STORAGE_IO: KindDescriptor(
        kind=MetricKind.STORAGE_IO,
        path="monitoring/storage/pool-io",
        array_key="poolio",
        entity_field="pool",
        channels=("read", "write", "total"),
        query_flags=(("per_pool", "true"),),
    ),
    MetricKind.ARC: KindDescriptor(
        kind=MetricKind.ARC,
        path="monitoring/storage/arc",
        array_key="arc",
        entity_field=None,
        channels=("size", "target", "hit_ratio"),
    ),
    MetricKind.CPU: KindDescriptor(
        kind=MetricKind.CPU,
        path="monitoring/system/cpu",
        array_key="cpu",
        entity_field=None,
        channels=("utilization", "load_1min", "load_5min", "load_15min"),
        query_flags=(("include_cores", "true"),),
    ),
    MetricKind.MEMORY: KindDescriptor(
        kind=MetricKind.MEMORY,
        path="monitoring/system/memory",
        array_key="memory",
        entity_field=None,
        channels=("used", "free", "cached", "total"),
    ),
}

ALL_KINDS: tuple[MetricKind, ...] = tuple(MetricKind)


def coerce_kind(value: MetricKind | str) -> MetricKind:
    if isinstance(value, MetricKind):
        return value
    try:
        return MetricKind(str(value))
    except ValueError:
        raise ValueError(f"unknown metric kind: {value!r}") from None


def descriptor_for(kind: MetricKind | str) -> KindDescriptor:
    return DESCRIPTORS[coerce_kind(kind)]


def is_chartable(kind: MetricKind, sample: Mapping[str, Any]) -> bool:
    """Reject the column-header rows the network collector occasionally stores."""

    if kind is MetricKind.NETWORK:
        link = sample.get("link")
        if not link or link == "LINK":
            return False
        if sample.get("ipackets") == "IPACKETS":
            return False
    return True


def core_entity(cpu_id: Any) -> str:
    # JSON numbers may arrive as 0.0
    if isinstance(cpu_id, float) and cpu_id.is_integer():
        cpu_id = int(cpu_id)
    return f"{CORE_ENTITY_PREFIX}{cpu_id}"


__all__ = [
    "ALL_KINDS",
    "DESCRIPTORS",
    "KindDescriptor",
    "MetricKind",
    "MetricStreamID",
    "SINGLETON_ENTITY",
    "coerce_kind",
    "core_entity",
    "descriptor_for",
    "is_chartable",
]
