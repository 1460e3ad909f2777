"""Test configuration and shared fixtures."""

import pytest
import pytest_asyncio
import yaml

from hostmon.runtime.sync import configuration as sync_configuration
from hostmon.runtime.sync import metrics as sync_metrics
from hostmon.runtime.sync.dashboard import MetricsDashboard
from hostmon.runtime.sync.monitoring_client import MonitoringClient
from hostmon.runtime.sync.windows import TimeWindowSpec
from tests.hostmon.runtime.sync.helpers import FakeMonitoringAPI


@pytest.fixture(autouse=True)
def _reset_sync_metrics():
    sync_metrics.reset_metrics()
    yield
    sync_metrics.reset_metrics()


@pytest.fixture
def configure_hostmon(tmp_path, monkeypatch):
    def _apply(data: dict, *, filename: str = "hostmon.yml") -> str:
        cfg_path = tmp_path / filename
        cfg_path.write_text(yaml.safe_dump(data))
        monkeypatch.chdir(tmp_path)
        sync_configuration.reset_config_cache()
        return str(cfg_path)

    try:
        yield _apply
    finally:
        sync_configuration.reset_config_cache()


@pytest.fixture
def fake_api():
    return FakeMonitoringAPI()


@pytest_asyncio.fixture
async def monitoring_client(fake_api):
    client = MonitoringClient(transport=fake_api.transport())
    try:
        yield client
    finally:
        await client.aclose()


@pytest_asyncio.fixture
async def dashboard(fake_api):
    dash = MetricsDashboard(
        MonitoringClient(transport=fake_api.transport()),
        spec=TimeWindowSpec("15min", "high"),
        refresh_interval=0,
    )
    try:
        yield dash
    finally:
        await dash.aclose()
