from __future__ import annotations

"""Conversions between ``scan_timestamp`` strings and epoch milliseconds."""

from datetime import datetime, timedelta, timezone
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def parse_timestamp_ms(value: Any) -> int | None:
    """Return epoch milliseconds for an ISO-8601 ``value`` or ``None``.

    Naive timestamps are read as UTC. A trailing ``Z`` is accepted.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text[-1] in "Zz":
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    return to_epoch_ms(dt)


def to_epoch_ms(dt: datetime) -> int:
    """Epoch milliseconds of ``dt``; naive values are read as UTC."""

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - _EPOCH) // _ONE_MS


def format_timestamp(ms: int) -> str:
    """Render epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    dt = _EPOCH + timedelta(milliseconds=int(ms))
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["format_timestamp", "parse_timestamp_ms", "to_epoch_ms", "utcnow"]
