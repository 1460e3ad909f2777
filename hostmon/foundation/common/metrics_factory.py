from __future__ import annotations

"""Idempotent Prometheus metric registration with test-visible stores.

Modules declare their metrics at import time through this factory so that
re-importing a module (pytest does this with ``importlib`` mode) returns the
already registered collector instead of raising a duplicate-timeseries error.
Each metric may carry a plain Python "test store" (a ``dict`` of label tuples
or a scalar) that tests inspect without scraping the registry.
"""

from collections.abc import Callable, Hashable, Iterable, MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any, Dict, Tuple, TypeVar

from prometheus_client import CollectorRegistry, Counter, Gauge, REGISTRY as global_registry
from prometheus_client.metrics import MetricWrapperBase

__all__ = [
    "get_or_create_counter",
    "get_or_create_gauge",
    "get_mapping_store",
    "get_metric_value",
    "reset_metrics",
    "set_test_value",
]

MetricT = TypeVar("MetricT", bound=MetricWrapperBase)
RegistryKey = Tuple[CollectorRegistry, str]

_METRICS: Dict[RegistryKey, MetricWrapperBase] = {}
_RESETTERS: Dict[RegistryKey, Callable[[], None]] = {}
_STORES: Dict[int, "_TestStore"] = {}


@dataclass
class _TestStore:
    factory: Callable[[], Any]
    value: Any
    attr: str | None = None

    def reset(self, metric: MetricWrapperBase) -> None:
        self.value = self.factory()
        if self.attr:
            setattr(metric, self.attr, self.value)


def get_or_create_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
    test_value_attr: str | None = None,
    test_value_factory: Callable[[], Any] | None = None,
) -> Counter:
    """Return the counter registered as ``name`` or create it."""

    reg = registry or global_registry
    metric = _fetch_or_register(Counter, name, documentation, labelnames, reg)
    _install_store(metric, test_value_attr, test_value_factory)
    _install_reset(metric, name, reg)
    return metric


def get_or_create_gauge(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
    test_value_attr: str | None = None,
    test_value_factory: Callable[[], Any] | None = None,
) -> Gauge:
    """Return the gauge registered as ``name`` or create it."""

    reg = registry or global_registry
    metric = _fetch_or_register(Gauge, name, documentation, labelnames, reg)
    _install_store(metric, test_value_attr, test_value_factory)
    _install_reset(metric, name, reg)
    return metric


def reset_metrics(
    names: Iterable[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> None:
    """Zero the metrics in ``names`` (all metrics of ``registry`` when ``None``)."""

    reg = registry or global_registry
    wanted = None if names is None else set(names)
    for (key_reg, key_name), resetter in list(_RESETTERS.items()):
        if key_reg is not reg:
            continue
        if wanted is not None and key_name not in wanted:
            continue
        resetter()


def get_mapping_store(
    metric: MetricWrapperBase,
    factory: Callable[[], MutableMapping[Hashable, Any]] | None = None,
) -> MutableMapping[Hashable, Any]:
    """Return the mapping test store of ``metric``, creating it on demand."""

    store = _STORES.get(id(metric))
    if store is None:
        creator = factory or dict
        store = _TestStore(factory=creator, value=creator())
        _STORES[id(metric)] = store
    if not isinstance(store.value, MutableMapping):
        raise TypeError(
            f"Test store for metric {metric!r} is not a mapping (found {type(store.value)!r})"
        )
    return store.value


def set_test_value(metric: MetricWrapperBase, value: Any) -> None:
    """Assign a scalar ``value`` to the test store of ``metric``."""

    store = _STORES.get(id(metric))
    if store is None:
        return
    store.value = value
    if store.attr:
        setattr(metric, store.attr, value)


def get_metric_value(
    metric: MetricWrapperBase, labels: MutableMapping[str, str] | None = None
) -> float:
    """Return the current sample value of ``metric`` from the registry view."""

    for family in metric.collect():
        for sample in family.samples:
            if sample.name.endswith("_created"):
                continue
            if labels is None and sample.labels:
                continue
            if labels is not None and sample.labels != labels:
                continue
            return float(sample.value)
    return 0.0


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _fetch_or_register(
    metric_cls: type[MetricT],
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None,
    registry: CollectorRegistry,
) -> MetricT:
    labels = tuple(labelnames or ())
    key = (registry, name)
    cached = _METRICS.get(key)
    if cached is not None:
        if isinstance(cached, metric_cls) and tuple(cached._labelnames) == labels:
            return cached
        registry.unregister(cached)
        _METRICS.pop(key, None)

    metric = metric_cls(name, documentation, labels, registry=registry)
    _METRICS[key] = metric
    return metric


def _install_store(
    metric: MetricWrapperBase,
    attr: str | None,
    factory: Callable[[], Any] | None,
) -> None:
    if attr is None and factory is None:
        return
    store = _STORES.get(id(metric))
    if store is None:
        creator = factory or dict
        store = _TestStore(factory=creator, value=creator(), attr=attr)
        _STORES[id(metric)] = store
    elif attr is not None:
        store.attr = attr
    if store.attr:
        setattr(metric, store.attr, store.value)


def _install_reset(metric: MetricWrapperBase, name: str, registry: CollectorRegistry) -> None:
    def _reset() -> None:
        if metric._labelnames:
            metric.clear()
        elif isinstance(metric, Counter):
            metric._value.set(0)  # type: ignore[attr-defined]
        elif isinstance(metric, Gauge):
            metric.set(0)
        store = _STORES.get(id(metric))
        if store is not None:
            store.reset(metric)

    _RESETTERS[(registry, name)] = _reset
