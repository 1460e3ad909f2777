"""Client-side synchronization of monitoring time series."""

from .dashboard import MetricsDashboard
from .exceptions import (
    HostmonValidationError,
    InvalidRefreshIntervalError,
    InvalidResolutionError,
    InvalidWindowError,
    MonitoringRequestError,
    MonitoringUnavailableError,
)
from .kinds import ALL_KINDS, MetricKind, MetricStreamID
from .monitoring_client import MonitoringClient
from .refresh_scheduler import RefreshScheduler, SchedulerState
from .series_buffer import MetricStreamTable, SeriesBuffer, SeriesEvent
from .watermark import WatermarkStore
from .windows import TimeWindowSpec

__all__ = [
    "ALL_KINDS",
    "HostmonValidationError",
    "InvalidRefreshIntervalError",
    "InvalidResolutionError",
    "InvalidWindowError",
    "MetricKind",
    "MetricStreamID",
    "MetricStreamTable",
    "MetricsDashboard",
    "MonitoringClient",
    "MonitoringRequestError",
    "MonitoringUnavailableError",
    "RefreshScheduler",
    "SchedulerState",
    "SeriesBuffer",
    "SeriesEvent",
    "TimeWindowSpec",
    "WatermarkStore",
]
