from __future__ import annotations

"""Turn raw monitoring samples into chart values.

Every function here is pure: it reads one sample dict and returns rounded
floats. Missing, malformed or non-finite numeric fields read as ``0``.
"""

import math
from typing import Any, Mapping

from .kinds import SINGLETON_ENTITY, MetricKind, core_entity, descriptor_for

BITS_PER_BYTE = 8
BITS_PER_MEGABIT = 1_000_000
BYTES_PER_MIB = 1_048_576
BYTES_PER_GIB = 1_073_741_824

RATE_DIGITS = 3
SIZE_DIGITS = 2
PERCENT_DIGITS = 1

ChannelValues = dict[str, float]


def as_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(result):
        return 0.0
    return result


def _first_present(sample: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = sample.get(name)
        if value is not None and value != "":
            return value
    return None


def mbps(bytes_delta: Any, elapsed_seconds: Any) -> float:
    """Megabits per second for ``bytes_delta`` over ``elapsed_seconds``.

    Non-positive intervals yield ``0`` so counter rollovers and duplicate
    scans never produce spikes, NaN or infinity.
    """

    elapsed = as_float(elapsed_seconds)
    if elapsed <= 0:
        return 0.0
    rate = as_float(bytes_delta) * BITS_PER_BYTE / BITS_PER_MEGABIT / elapsed
    return max(0.0, rate)


def network_rates(sample: Mapping[str, Any]) -> ChannelValues:
    if any(name in sample for name in ("time_delta_seconds", "rbytes_delta", "obytes_delta")):
        elapsed = sample.get("time_delta_seconds")
        rx = mbps(sample.get("rbytes_delta"), elapsed)
        tx = mbps(sample.get("obytes_delta"), elapsed)
    else:
        # Collector already reduced the counters
        rx = max(0.0, as_float(sample.get("rx_mbps")))
        tx = max(0.0, as_float(sample.get("tx_mbps")))
    return {
        "rx": round(rx, RATE_DIGITS),
        "tx": round(tx, RATE_DIGITS),
        "total": round(rx + tx, RATE_DIGITS),
    }


def pool_io_rates(sample: Mapping[str, Any]) -> ChannelValues:
    read = as_float(sample.get("read_bandwidth_bytes")) / BYTES_PER_MIB
    write = as_float(sample.get("write_bandwidth_bytes")) / BYTES_PER_MIB
    return {
        "read": round(read, RATE_DIGITS),
        "write": round(write, RATE_DIGITS),
        "total": round(read + write, RATE_DIGITS),
    }


def gib(value: Any) -> float:
    return round(as_float(value) / BYTES_PER_GIB, SIZE_DIGITS)


def hit_ratio(sample: Mapping[str, Any]) -> float:
    supplied = sample.get("hit_ratio")
    if supplied is not None and supplied != "":
        return round(as_float(supplied), PERCENT_DIGITS)
    hits = as_float(_first_present(sample, "hits", "arc_hits"))
    misses = as_float(_first_present(sample, "misses", "arc_misses"))
    lookups = hits + misses
    if lookups <= 0:
        return 0.0
    return round(hits / lookups * 100, PERCENT_DIGITS)


def arc_values(sample: Mapping[str, Any]) -> ChannelValues:
    return {
        "size": gib(sample.get("arc_size")),
        "target": gib(sample.get("arc_target_size")),
        "hit_ratio": hit_ratio(sample),
    }


def memory_values(sample: Mapping[str, Any]) -> ChannelValues:
    return {
        "used": gib(sample.get("used_memory_bytes")),
        "free": gib(sample.get("free_memory_bytes")),
        "cached": gib(sample.get("cached_bytes")),
        "total": gib(sample.get("total_memory_bytes")),
    }


def cpu_values(sample: Mapping[str, Any]) -> dict[str, ChannelValues]:
    """Host-wide CPU channels plus one ``utilization`` stream per core."""

    result: dict[str, ChannelValues] = {
        SINGLETON_ENTITY: {
            "utilization": round(as_float(sample.get("cpu_utilization_pct")), PERCENT_DIGITS),
            "load_1min": round(as_float(sample.get("load_avg_1min")), SIZE_DIGITS),
            "load_5min": round(as_float(sample.get("load_avg_5min")), SIZE_DIGITS),
            "load_15min": round(as_float(sample.get("load_avg_15min")), SIZE_DIGITS),
        }
    }
    cores = sample.get("per_core_parsed")
    if isinstance(cores, list):
        for core in cores:
            if not isinstance(core, Mapping) or core.get("cpu_id") is None:
                continue
            result[core_entity(core["cpu_id"])] = {
                "utilization": round(as_float(core.get("utilization_pct")), PERCENT_DIGITS)
            }
    return result


def derive_channel_values(kind: MetricKind, sample: Mapping[str, Any]) -> dict[str, ChannelValues]:
    """Return ``{entity_key: {channel: value}}`` for one raw sample.

    Samples without an entity key produce an empty mapping.
    """

    if kind is MetricKind.CPU:
        return cpu_values(sample)
    entity = descriptor_for(kind).entity_of(sample)
    if entity is None:
        return {}
    if kind is MetricKind.NETWORK:
        return {entity: network_rates(sample)}
    if kind is MetricKind.STORAGE_IO:
        return {entity: pool_io_rates(sample)}
    if kind is MetricKind.ARC:
        return {entity: arc_values(sample)}
    return {entity: memory_values(sample)}


__all__ = [
    "arc_values",
    "as_float",
    "cpu_values",
    "derive_channel_values",
    "gib",
    "hit_ratio",
    "mbps",
    "memory_values",
    "network_rates",
    "pool_io_rates",
]
