"""Public API surface for the hostmon package."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = [
    "MetricsDashboard",
    "MetricKind",
    "MonitoringClient",
    "TimeWindowSpec",
]

_EXPORTS = {
    "MetricsDashboard": "hostmon.runtime.sync.dashboard",
    "MetricKind": "hostmon.runtime.sync.kinds",
    "MonitoringClient": "hostmon.runtime.sync.monitoring_client",
    "TimeWindowSpec": "hostmon.runtime.sync.windows",
}


def __getattr__(name: str) -> Any:
    module_path = _EXPORTS.get(name)
    if module_path is None:
        raise AttributeError(name)
    module = importlib.import_module(module_path)
    value = getattr(module, name)
    globals()[name] = value
    return value
