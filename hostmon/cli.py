from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import List

from .foundation.config import UnifiedConfig, load_config
from .runtime.sync import configuration
from .runtime.sync.dashboard import MetricsDashboard
from .runtime.sync.exceptions import MonitoringRequestError
from .runtime.sync.kinds import ALL_KINDS
from .runtime.sync.metrics import start_metrics_server
from .runtime.sync.monitoring_client import MonitoringClient
from .runtime.sync.windows import RESOLUTION_LIMITS, WINDOWS, TimeWindowSpec, validate_refresh_interval

logger = logging.getLogger(__name__)


def _resolve_config(path: str | None) -> UnifiedConfig:
    if path:
        return load_config(path)
    return configuration.get_unified_config()


def _base_url(args: argparse.Namespace, cfg: UnifiedConfig) -> str | None:
    return args.base_url or cfg.monitoring.base_url


def _log_summary(dash: MetricsDashboard, cycle: int) -> None:
    for kind in ALL_KINDS:
        logger.info(
            "watch.summary cycle=%d kind=%s entities=%d points=%d watermark=%s",
            cycle,
            kind.value,
            len(dash.entities(kind)),
            dash.table.point_count(kind),
            dash.watermark(kind) or "-",
            extra={"cycle": cycle, "kind": kind.value},
        )
    if dash.error:
        logger.error("watch.error cycle=%d %s", cycle, dash.error, extra={"cycle": cycle})


async def _watch(args: argparse.Namespace, cfg: UnifiedConfig) -> int:
    host = _base_url(args, cfg)
    if not host:
        logger.error("No monitoring base URL given (--base-url, monitoring.base_url or HOSTMON_BASE_URL)")
        return 2
    spec = TimeWindowSpec(
        args.window or cfg.dashboard.window,
        args.resolution or cfg.dashboard.resolution,
    )
    interval = validate_refresh_interval(
        args.interval if args.interval is not None else cfg.dashboard.refresh_interval_seconds
    )
    metrics_port = args.metrics_port or cfg.telemetry.metrics_port
    if metrics_port:
        start_metrics_server(metrics_port)

    client = MonitoringClient.from_config(cfg.monitoring)
    # cycles are driven below so --cycles can bound the run
    async with MetricsDashboard(client, spec=spec, refresh_interval=0) as dash:
        await dash.select_host(host)
        cycle = 1
        _log_summary(dash, cycle)
        while interval > 0 and (args.cycles == 0 or cycle < args.cycles):
            await asyncio.sleep(interval)
            await dash.trigger_manual_refresh()
            cycle += 1
            _log_summary(dash, cycle)
        return 1 if dash.error else 0


async def _health(args: argparse.Namespace, cfg: UnifiedConfig) -> int:
    host = _base_url(args, cfg)
    if not host:
        logger.error("No monitoring base URL given (--base-url, monitoring.base_url or HOSTMON_BASE_URL)")
        return 2
    client = MonitoringClient.from_config(cfg.monitoring)
    try:
        payload = await (client.get_status(host) if args.status else client.get_health(host))
    except MonitoringRequestError as exc:
        logger.error("Health check failed: %s", exc)
        return 1
    finally:
        await client.aclose()
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hostmon", description="Host monitoring series sync")
    sub = parser.add_subparsers(dest="cmd", required=True)

    watch_p = sub.add_parser("watch", help="Backfill and poll a host, printing stream summaries")
    watch_p.add_argument("--base-url", help="Monitoring API base URL of the host")
    watch_p.add_argument("--config", help="Path to hostmon.yml")
    watch_p.add_argument("--window", choices=list(WINDOWS))
    watch_p.add_argument("--resolution", choices=list(RESOLUTION_LIMITS))
    watch_p.add_argument("--interval", type=int, help="Seconds between incremental cycles")
    watch_p.add_argument("--cycles", type=int, default=0, help="Stop after N cycles (0 = forever)")
    watch_p.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")

    health_p = sub.add_parser("health", help="Print the collector health report")
    health_p.add_argument("--base-url", help="Monitoring API base URL of the host")
    health_p.add_argument("--config", help="Path to hostmon.yml")
    health_p.add_argument("--status", action="store_true", help="Print collector status instead")
    return parser


async def _main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = _resolve_config(args.config)
    if args.cmd == "watch":
        return await _watch(args, cfg)
    return await _health(args, cfg)


def main(argv: List[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    try:
        return asyncio.run(_main(argv))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
