from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, FrozenSet, Mapping

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)


_MONITORING_ALIASES: dict[str, str] = {
    "url": "base_url",
    "host": "base_url",
    "timeout": "timeout_seconds",
    "token": "api_key",
}

_DASHBOARD_ALIASES: dict[str, str] = {
    "time_window": "window",
    "refresh_interval": "refresh_interval_seconds",
}


@dataclass
class MonitoringConfig:
    """Connection settings for the host monitoring API."""

    base_url: str | None = field(
        default=None, metadata={"env": "HOSTMON_BASE_URL"}
    )
    api_key: str | None = field(
        default=None, metadata={"env": "HOSTMON_API_KEY"}
    )
    timeout_seconds: float = field(
        default=10.0, metadata={"env": "HOSTMON_TIMEOUT"}
    )
    verify_tls: bool = field(
        default=True, metadata={"env": "HOSTMON_VERIFY_TLS"}
    )


@dataclass
class DashboardConfig:
    """Initial chart window, resolution and auto-refresh cadence."""

    window: str = field(default="15min", metadata={"env": "HOSTMON_WINDOW"})
    resolution: str = field(
        default="high", metadata={"env": "HOSTMON_RESOLUTION"}
    )
    refresh_interval_seconds: int = field(
        default=60, metadata={"env": "HOSTMON_REFRESH_INTERVAL"}
    )


@dataclass
class TelemetryConfig:
    """Prometheus exposition for the sync engine."""

    metrics_port: int | None = field(
        default=None, metadata={"env": "HOSTMON_METRICS_PORT"}
    )


CONFIG_SECTION_NAMES: tuple[str, ...] = (
    "monitoring",
    "dashboard",
    "telemetry",
)


@dataclass
class UnifiedConfig:
    """Configuration aggregating every hostmon section."""

    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    present_sections: FrozenSet[str] = field(default_factory=frozenset)


def find_config_file(cwd: Path | None = None) -> str | None:
    """Return the first discoverable configuration file in ``cwd``."""

    base = Path.cwd() if cwd is None else cwd

    for name in ("hostmon.yml", "hostmon.yaml"):
        candidate = base / name
        if candidate.is_file():
            return str(candidate)
    return None


def _read_config_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                logger.error("Failed to parse configuration file %s: %s", path, exc)
                raise ValueError(f"Failed to parse configuration file {path}") from exc
    except (FileNotFoundError, OSError) as exc:
        logger.error("Unable to open configuration file %s: %s", path, exc)
        raise

    if not isinstance(data, dict):
        raise TypeError("Unified config must be a mapping")
    return data


def _extract_sections(data: Mapping[str, Any]) -> tuple[dict[str, dict[str, Any]], FrozenSet[str]]:
    present_sections: FrozenSet[str] = frozenset(
        section
        for section in CONFIG_SECTION_NAMES
        if section in data and isinstance(data.get(section), dict)
    )

    sections: dict[str, dict[str, Any]] = {}
    for section_name in CONFIG_SECTION_NAMES:
        raw_section = data.get(section_name, {})
        if raw_section is None:
            raw_section = {}
        if not isinstance(raw_section, dict):
            raise TypeError(f"{section_name} section must be a mapping")
        sections[section_name] = dict(raw_section)
    return sections, present_sections


def _apply_aliases(section: Mapping[str, Any], aliases: Mapping[str, str], *, logger_prefix: str) -> dict[str, Any]:
    normalized = dict(section)
    for alias, canonical in aliases.items():
        if canonical in normalized:
            continue
        if alias in normalized:
            logger.warning(
                "%s: key '%s' is deprecated; use '%s' instead",
                logger_prefix,
                alias,
                canonical,
            )
            normalized[canonical] = normalized.pop(alias)
    return normalized


def _coerce_env(raw: str, default: Any, type_name: str) -> Any:
    # Annotations are strings under ``from __future__ import annotations``.
    if isinstance(default, bool) or type_name.startswith("bool"):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(default, int) or type_name.startswith("int"):
        return int(raw)
    if isinstance(default, float) or type_name.startswith("float"):
        return float(raw)
    return raw


def _apply_env(section_cls: type, values: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    merged = dict(values)
    defaults = section_cls()
    for f in fields(section_cls):
        env_key = f.metadata.get("env")
        if not env_key or env_key not in environ:
            continue
        default = merged.get(f.name, getattr(defaults, f.name))
        merged[f.name] = _coerce_env(environ[env_key], default, str(f.type))
    return merged


def config_from_mapping(
    data: Mapping[str, Any],
    *,
    environ: Mapping[str, str] | None = None,
) -> UnifiedConfig:
    """Build :class:`UnifiedConfig` from a parsed mapping plus environment."""

    env = os.environ if environ is None else environ
    sections, present_sections = _extract_sections(data)

    monitoring_data = _apply_aliases(
        sections["monitoring"], _MONITORING_ALIASES, logger_prefix="monitoring"
    )
    dashboard_data = _apply_aliases(
        sections["dashboard"], _DASHBOARD_ALIASES, logger_prefix="dashboard"
    )

    monitoring_cfg = MonitoringConfig(**_apply_env(MonitoringConfig, monitoring_data, env))
    dashboard_cfg = DashboardConfig(**_apply_env(DashboardConfig, dashboard_data, env))
    telemetry_cfg = TelemetryConfig(
        **_apply_env(TelemetryConfig, sections["telemetry"], env)
    )

    return UnifiedConfig(
        monitoring=monitoring_cfg,
        dashboard=dashboard_cfg,
        telemetry=telemetry_cfg,
        present_sections=present_sections,
    )


def load_config(path: str, *, environ: Mapping[str, str] | None = None) -> UnifiedConfig:
    """Parse YAML and populate :class:`UnifiedConfig`."""

    return config_from_mapping(_read_config_mapping(path), environ=environ)


__all__ = [
    "CONFIG_SECTION_NAMES",
    "DashboardConfig",
    "MonitoringConfig",
    "TelemetryConfig",
    "UnifiedConfig",
    "config_from_mapping",
    "find_config_file",
    "load_config",
]
