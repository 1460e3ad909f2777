from __future__ import annotations

"""Prometheus metrics for the series synchronization engine."""

from collections.abc import Sequence

from prometheus_client import (
    generate_latest,
    start_http_server,
    REGISTRY as global_registry,
)
from hostmon.foundation.common.metrics_factory import (
    get_mapping_store,
    get_or_create_counter,
    get_or_create_gauge,
    reset_metrics as reset_registered_metrics,
    set_test_value,
)

_REGISTERED_METRICS: set[str] = set()


def _mapping(metric):
    return get_mapping_store(metric, dict)


def _counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    **kwargs,
):
    metric = get_or_create_counter(name, documentation, labelnames, **kwargs)
    _REGISTERED_METRICS.add(name)
    return metric


def _gauge(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    **kwargs,
):
    metric = get_or_create_gauge(name, documentation, labelnames, **kwargs)
    _REGISTERED_METRICS.add(name)
    return metric


# ---------------------------------------------------------------------------
# Fetch metrics
# ---------------------------------------------------------------------------
sync_fetch_total = _counter(
    "sync_fetch_total",
    "Total number of monitoring API queries grouped by kind and cycle mode",
    ["kind", "mode"],
    test_value_attr="_vals",
    test_value_factory=dict,
)

sync_fetch_failure_total = _counter(
    "sync_fetch_failure_total",
    "Total number of failed monitoring API queries grouped by kind and cycle mode",
    ["kind", "mode"],
    test_value_attr="_vals",
    test_value_factory=dict,
)

# ---------------------------------------------------------------------------
# Cycle metrics
# ---------------------------------------------------------------------------
sync_cycle_dropped_total = _counter(
    "sync_cycle_dropped_total",
    "Refresh cycles dropped because another cycle was in flight",
    ["mode"],
    test_value_attr="_vals",
    test_value_factory=dict,
)

sync_stale_response_total = _counter(
    "sync_stale_response_total",
    "Cycle results discarded because the context changed while in flight",
    ["mode"],
    test_value_attr="_vals",
    test_value_factory=dict,
)

sync_cycles_in_progress = _gauge(
    "sync_cycles_in_progress",
    "Number of refresh cycles currently awaiting the monitoring API",
    test_value_attr="_val",
    test_value_factory=lambda: 0,
)

# ---------------------------------------------------------------------------
# Series metrics
# ---------------------------------------------------------------------------
sync_watermark_timestamp = _gauge(
    "sync_watermark_timestamp",
    "Epoch milliseconds of the newest sample incorporated per kind",
    ["kind"],
    test_value_attr="_vals",
    test_value_factory=dict,
)

sync_series_points = _gauge(
    "sync_series_points",
    "Points held across every channel of a kind",
    ["kind"],
    test_value_attr="_vals",
    test_value_factory=dict,
)


def observe_fetch(kind: str, mode: str) -> None:
    k = str(kind)
    m = str(mode)
    sync_fetch_total.labels(kind=k, mode=m).inc()
    _mapping(sync_fetch_total)[(k, m)] = _mapping(sync_fetch_total).get((k, m), 0) + 1


def observe_fetch_failure(kind: str, mode: str) -> None:
    k = str(kind)
    m = str(mode)
    sync_fetch_failure_total.labels(kind=k, mode=m).inc()
    _mapping(sync_fetch_failure_total)[(k, m)] = (
        _mapping(sync_fetch_failure_total).get((k, m), 0) + 1
    )


def observe_cycle_dropped(mode: str) -> None:
    m = str(mode)
    sync_cycle_dropped_total.labels(mode=m).inc()
    _mapping(sync_cycle_dropped_total)[m] = _mapping(sync_cycle_dropped_total).get(m, 0) + 1


def observe_stale_response(mode: str) -> None:
    m = str(mode)
    sync_stale_response_total.labels(mode=m).inc()
    _mapping(sync_stale_response_total)[m] = _mapping(sync_stale_response_total).get(m, 0) + 1


def observe_cycle_start() -> None:
    sync_cycles_in_progress.inc()
    set_test_value(sync_cycles_in_progress, sync_cycles_in_progress._value.get())


def observe_cycle_end() -> None:
    sync_cycles_in_progress.dec()
    set_test_value(sync_cycles_in_progress, sync_cycles_in_progress._value.get())


def observe_watermark(kind: str, ts_ms: int) -> None:
    k = str(kind)
    sync_watermark_timestamp.labels(kind=k).set(ts_ms)
    _mapping(sync_watermark_timestamp)[k] = ts_ms


def observe_series_points(kind: str, count: int) -> None:
    k = str(kind)
    sync_series_points.labels(kind=k).set(count)
    _mapping(sync_series_points)[k] = count


def start_metrics_server(port: int = 8000) -> None:
    """Expose metrics via an HTTP server."""
    start_http_server(port, registry=global_registry)


def collect_metrics() -> str:
    """Return metrics in text exposition format."""
    text: str = generate_latest(global_registry).decode()
    return text


def reset_metrics() -> None:
    """Reset metric values for tests."""
    reset_registered_metrics(_REGISTERED_METRICS)


__all__ = [
    "collect_metrics",
    "observe_cycle_dropped",
    "observe_cycle_end",
    "observe_cycle_start",
    "observe_fetch",
    "observe_fetch_failure",
    "observe_series_points",
    "observe_stale_response",
    "observe_watermark",
    "reset_metrics",
    "start_metrics_server",
    "sync_cycle_dropped_total",
    "sync_cycles_in_progress",
    "sync_fetch_failure_total",
    "sync_fetch_total",
    "sync_series_points",
    "sync_stale_response_total",
    "sync_watermark_timestamp",
]
