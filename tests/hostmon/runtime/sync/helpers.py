"""Fake monitoring API served through ``httpx.MockTransport``."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any

import httpx

from hostmon.runtime.sync.kinds import DESCRIPTORS, MetricKind
from hostmon.runtime.sync.timestamps import format_timestamp, parse_timestamp_ms, to_epoch_ms, utcnow

HOST = "http://hv01.test:5001/api"
STEP_MS = 5_000


def base_ms() -> int:
    """A start time comfortably inside the shortest chart window."""

    return to_epoch_ms(utcnow() - timedelta(seconds=50))


def ts(base: int, i: int) -> str:
    return format_timestamp(base + i * STEP_MS)


def net_row(link: str, scan_timestamp: str, rbytes: Any = 1_250_000, obytes: Any = 625_000, dt: Any = 1) -> dict:
    return {
        "link": link,
        "scan_timestamp": scan_timestamp,
        "rbytes_delta": rbytes,
        "obytes_delta": obytes,
        "time_delta_seconds": dt,
        "ipackets": 10,
    }


def pool_row(pool: str, scan_timestamp: str, read: Any = 2_097_152, write: Any = 1_048_576) -> dict:
    return {
        "pool": pool,
        "scan_timestamp": scan_timestamp,
        "read_bandwidth_bytes": read,
        "write_bandwidth_bytes": write,
    }


def arc_row(scan_timestamp: str, *, size: int = 4 * 1_073_741_824, hits: int = 90, misses: int = 10) -> dict:
    return {
        "scan_timestamp": scan_timestamp,
        "arc_size": size,
        "arc_target_size": 8 * 1_073_741_824,
        "hits": hits,
        "misses": misses,
    }


def cpu_row(scan_timestamp: str, *, util: float = 25.0, cores: tuple[float, ...] = (20.0, 30.0)) -> dict:
    return {
        "scan_timestamp": scan_timestamp,
        "cpu_utilization_pct": util,
        "load_avg_1min": 1.5,
        "load_avg_5min": 1.25,
        "load_avg_15min": 1.0,
        "per_core_parsed": [
            {"cpu_id": idx, "utilization_pct": value} for idx, value in enumerate(cores)
        ],
    }


def mem_row(scan_timestamp: str, *, used: int = 6 * 1_073_741_824) -> dict:
    return {
        "scan_timestamp": scan_timestamp,
        "used_memory_bytes": used,
        "free_memory_bytes": 2 * 1_073_741_824,
        "cached_bytes": 1_073_741_824,
        "total_memory_bytes": 8 * 1_073_741_824,
    }


def rows_at(base: int, i: int) -> dict[MetricKind, list[dict]]:
    """One scan of every kind at step ``i``."""

    stamp = ts(base, i)
    return {
        MetricKind.NETWORK: [net_row("ixgbe0", stamp), net_row("igb1", stamp, rbytes=125_000, obytes=0)],
        MetricKind.STORAGE_IO: [pool_row("tank", stamp), pool_row("rpool", stamp, read=0, write=0)],
        MetricKind.ARC: [arc_row(stamp)],
        MetricKind.CPU: [cpu_row(stamp)],
        MetricKind.MEMORY: [mem_row(stamp)],
    }


class FakeMonitoringAPI:
    """In-memory monitoring endpoints.

    ``since`` is honoured inclusively, as the real collector does, so the
    newest already-seen record comes back on every incremental poll.
    """

    def __init__(self) -> None:
        self.rows: dict[MetricKind, list[dict]] = {kind: [] for kind in MetricKind}
        self.requests: list[httpx.Request] = []
        self.fail: dict[MetricKind, int] = {}
        self.envelope = False
        self.hold_new_requests = False
        self.held = 0
        self.all_held = asyncio.Event()
        self.hold_target = len(MetricKind)
        self._gate = asyncio.Event()
        self._by_path = {f"/api/{d.path}": kind for kind, d in DESCRIPTORS.items()}

    # data ---------------------------------------------------------
    def add(self, batch: dict[MetricKind, list[dict]]) -> None:
        for kind, rows in batch.items():
            self.rows[kind].extend(rows)

    def hold(self) -> None:
        self.hold_new_requests = True
        self.held = 0
        self.all_held.clear()
        self._gate.clear()

    def release(self) -> None:
        self.hold_new_requests = False
        self._gate.set()

    def calls_for(self, kind: MetricKind) -> list[httpx.Request]:
        path = f"/api/{DESCRIPTORS[kind].path}"
        return [r for r in self.requests if r.url.path == path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # handler ------------------------------------------------------
    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        kind = self._by_path.get(request.url.path)
        if kind is None:
            return httpx.Response(404, json={"success": False, "message": "not found"})
        if self.hold_new_requests:
            self.held += 1
            if self.held >= self.hold_target:
                self.all_held.set()
            await self._gate.wait()
        status = self.fail.get(kind)
        if status:
            return httpx.Response(status, json={"success": False, "message": f"{kind.value} unavailable"})
        since = parse_timestamp_ms(request.url.params.get("since"))
        rows = [
            row
            for row in self.rows[kind]
            if since is None or (parse_timestamp_ms(row["scan_timestamp"]) or 0) >= since
        ]
        body: dict[str, Any] = {DESCRIPTORS[kind].array_key: rows}
        if self.envelope:
            body = {"success": True, "data": body}
        return httpx.Response(200, json=body)


__all__ = [
    "FakeMonitoringAPI",
    "HOST",
    "STEP_MS",
    "arc_row",
    "base_ms",
    "cpu_row",
    "mem_row",
    "net_row",
    "pool_row",
    "rows_at",
    "ts",
]
