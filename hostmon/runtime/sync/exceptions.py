"""Exception types raised by the series synchronization engine."""

from __future__ import annotations

__all__ = [
    "HostmonValidationError",
    "InvalidWindowError",
    "InvalidResolutionError",
    "InvalidRefreshIntervalError",
    "MonitoringRequestError",
    "MonitoringUnavailableError",
]


class HostmonValidationError(ValueError):
    """Base class for rejected control input."""
    pass


class InvalidWindowError(HostmonValidationError):
    """Raised when a time window name is not one of the supported windows."""
    pass


class InvalidResolutionError(HostmonValidationError):
    """Raised when a resolution name is unknown."""
    pass


class InvalidRefreshIntervalError(HostmonValidationError):
    """Raised when an auto-refresh interval is not one of the offered choices."""
    pass


class MonitoringRequestError(RuntimeError):
    """A single monitoring API query failed.

    Covers transport errors, HTTP error statuses, ``success: false`` envelopes
    and payloads missing the expected sample array.
    """

    def __init__(self, message: str, *, kind: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class MonitoringUnavailableError(RuntimeError):
    """Every metric kind failed within one refresh cycle."""

    def __init__(self, host: str, failures: dict[str, str]) -> None:
        self.host = host
        self.failures = dict(failures)
        super().__init__(f"Unable to load monitoring data from {host}")
