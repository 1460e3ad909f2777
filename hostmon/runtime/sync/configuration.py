"""Process-wide hostmon configuration lookup."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from hostmon.foundation.config import (
    UnifiedConfig,
    config_from_mapping,
    find_config_file,
    load_config,
)

logger = logging.getLogger(__name__)

_CONFIG_CACHE: UnifiedConfig | None = None


def resolve_config(
    cwd: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> UnifiedConfig:
    """Load ``hostmon.yml`` from ``cwd`` when present, else defaults.

    ``HOSTMON_*`` environment overrides apply in both cases.
    """

    env = os.environ if environ is None else environ
    path = find_config_file(cwd)
    if path is None:
        logger.debug("config.defaults", extra={"cwd": str(cwd or Path.cwd())})
        return config_from_mapping({}, environ=env)
    logger.debug("config.loaded", extra={"path": path})
    return load_config(path, environ=env)


def get_unified_config(*, reload: bool = False) -> UnifiedConfig:
    """Return the cached process configuration, resolving it on first use."""

    global _CONFIG_CACHE
    if reload or _CONFIG_CACHE is None:
        _CONFIG_CACHE = resolve_config()
    return _CONFIG_CACHE


def reset_config_cache() -> None:
    global _CONFIG_CACHE
    _CONFIG_CACHE = None


__all__ = ["get_unified_config", "reset_config_cache", "resolve_config"]
