import logging

import pytest

from hostmon.foundation.config import (
    UnifiedConfig,
    config_from_mapping,
    find_config_file,
    load_config,
)
from hostmon.runtime.sync import configuration


def test_load_config_reads_sections(tmp_path):
    path = tmp_path / "hostmon.yml"
    path.write_text(
        "monitoring:\n"
        "  base_url: https://hv01:5001/api\n"
        "  timeout_seconds: 3.5\n"
        "dashboard:\n"
        "  window: 1hour\n"
        "  refresh_interval_seconds: 30\n"
    )
    cfg = load_config(str(path), environ={})
    assert cfg.monitoring.base_url == "https://hv01:5001/api"
    assert cfg.monitoring.timeout_seconds == 3.5
    assert cfg.monitoring.verify_tls is True
    assert cfg.dashboard.window == "1hour"
    assert cfg.dashboard.resolution == "high"
    assert cfg.dashboard.refresh_interval_seconds == 30
    assert cfg.telemetry.metrics_port is None
    assert cfg.present_sections == frozenset({"monitoring", "dashboard"})


def test_environment_overrides_file_values():
    cfg = config_from_mapping(
        {"monitoring": {"base_url": "http://file"}},
        environ={
            "HOSTMON_BASE_URL": "http://env",
            "HOSTMON_VERIFY_TLS": "false",
            "HOSTMON_TIMEOUT": "2",
            "HOSTMON_REFRESH_INTERVAL": "300",
            "HOSTMON_METRICS_PORT": "9105",
        },
    )
    assert cfg.monitoring.base_url == "http://env"
    assert cfg.monitoring.verify_tls is False
    assert cfg.monitoring.timeout_seconds == 2.0
    assert cfg.dashboard.refresh_interval_seconds == 300
    assert cfg.telemetry.metrics_port == 9105


def test_deprecated_keys_are_mapped_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="hostmon.foundation.config"):
        cfg = config_from_mapping(
            {"monitoring": {"url": "http://old", "token": "t"}, "dashboard": {"time_window": "5min"}},
            environ={},
        )
    assert cfg.monitoring.base_url == "http://old"
    assert cfg.monitoring.api_key == "t"
    assert cfg.dashboard.window == "5min"
    assert any("deprecated" in r.getMessage() for r in caplog.records)


def test_invalid_sections_raise(tmp_path):
    with pytest.raises(TypeError):
        config_from_mapping({"monitoring": ["not", "a", "mapping"]}, environ={})
    path = tmp_path / "bad.yml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(TypeError):
        load_config(str(path))
    broken = tmp_path / "broken.yml"
    broken.write_text("monitoring: [unclosed\n")
    with pytest.raises(ValueError):
        load_config(str(broken))


def test_find_config_file(tmp_path):
    assert find_config_file(tmp_path) is None
    (tmp_path / "hostmon.yaml").write_text("{}\n")
    assert find_config_file(tmp_path) == str(tmp_path / "hostmon.yaml")


def test_runtime_config_discovered_and_cached(configure_hostmon):
    configure_hostmon({"dashboard": {"window": "6hour"}})
    cfg = configuration.get_unified_config()
    assert cfg.dashboard.window == "6hour"
    assert configuration.get_unified_config() is cfg
    assert configuration.get_unified_config(reload=True) is not cfg


def test_runtime_defaults_without_file(tmp_path):
    assert configuration.resolve_config(tmp_path, environ={}) == UnifiedConfig()


def test_environment_applies_without_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOSTMON_BASE_URL", "http://env-host/api")
    monkeypatch.setenv("HOSTMON_WINDOW", "1hour")
    configuration.reset_config_cache()
    try:
        cfg = configuration.get_unified_config()
    finally:
        configuration.reset_config_cache()
    assert cfg.monitoring.base_url == "http://env-host/api"
    assert cfg.dashboard.window == "1hour"
    assert cfg.dashboard.resolution == "high"
    assert cfg.present_sections == frozenset()


def test_environment_overrides_discovered_file(configure_hostmon, monkeypatch):
    configure_hostmon({"monitoring": {"base_url": "http://file"}})
    monkeypatch.setenv("HOSTMON_BASE_URL", "http://env")
    assert configuration.get_unified_config().monitoring.base_url == "http://env"
