from __future__ import annotations

"""Chart time windows, resolutions and the request bounds they imply."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from .exceptions import InvalidRefreshIntervalError, InvalidResolutionError, InvalidWindowError
from .timestamps import format_timestamp, to_epoch_ms, utcnow

# window -> (span in minutes, points kept per channel)
WINDOWS: dict[str, tuple[int, int]] = {
    "1min": (1, 12),
    "5min": (5, 60),
    "10min": (10, 120),
    "15min": (15, 180),
    "30min": (30, 360),
    "1hour": (60, 720),
    "3hour": (180, 2160),
    "6hour": (360, 4320),
    "12hour": (720, 8640),
    "24hour": (1440, 17280),
}

# records requested per entity
RESOLUTION_LIMITS: dict[str, int] = {
    "realtime": 125,
    "high": 38,
    "medium": 13,
    "low": 5,
}

REFRESH_INTERVALS: tuple[int, ...] = (0, 5, 10, 30, 60, 300)

DEFAULT_WINDOW = "15min"
DEFAULT_RESOLUTION = "high"
DEFAULT_REFRESH_INTERVAL = 60


@dataclass(frozen=True)
class TimeWindowSpec:
    """A (window, resolution) selection.

    ``since_cutoff`` bounds the historical query, ``record_limit`` caps
    records per entity for both historical and incremental queries, and
    ``capacity`` is the sliding-window length of every channel.
    """

    window: str = DEFAULT_WINDOW
    resolution: str = DEFAULT_RESOLUTION

    def __post_init__(self) -> None:
        if self.window not in WINDOWS:
            raise InvalidWindowError(
                f"unknown window {self.window!r}; expected one of {', '.join(WINDOWS)}"
            )
        if self.resolution not in RESOLUTION_LIMITS:
            raise InvalidResolutionError(
                f"unknown resolution {self.resolution!r}; expected one of {', '.join(RESOLUTION_LIMITS)}"
            )

    @property
    def span(self) -> timedelta:
        return timedelta(minutes=WINDOWS[self.window][0])

    @property
    def capacity(self) -> int:
        return WINDOWS[self.window][1]

    @property
    def record_limit(self) -> int:
        return RESOLUTION_LIMITS[self.resolution]

    def since_cutoff(self, now: datetime | None = None) -> str:
        current = now or utcnow()
        return format_timestamp(to_epoch_ms(current - self.span))

    def with_window(self, window: str) -> "TimeWindowSpec":
        return TimeWindowSpec(window=window, resolution=self.resolution)

    def with_resolution(self, resolution: str) -> "TimeWindowSpec":
        return TimeWindowSpec(window=self.window, resolution=resolution)


def validate_refresh_interval(seconds: int | float) -> int:
    try:
        value = int(seconds)
    except (TypeError, ValueError):
        raise InvalidRefreshIntervalError(f"invalid refresh interval {seconds!r}") from None
    if value != seconds or value not in REFRESH_INTERVALS:
        raise InvalidRefreshIntervalError(
            f"refresh interval must be one of {REFRESH_INTERVALS}, got {seconds!r}"
        )
    return value


__all__ = [
    "DEFAULT_REFRESH_INTERVAL",
    "DEFAULT_RESOLUTION",
    "DEFAULT_WINDOW",
    "REFRESH_INTERVALS",
    "RESOLUTION_LIMITS",
    "TimeWindowSpec",
    "WINDOWS",
    "validate_refresh_interval",
]
