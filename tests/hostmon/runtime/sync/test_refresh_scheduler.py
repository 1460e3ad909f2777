import asyncio
import logging

import pytest

from hostmon.foundation.common.metrics_factory import get_mapping_store
from hostmon.runtime.sync import metrics as sync_metrics
from hostmon.runtime.sync.dashboard import MetricsDashboard
from hostmon.runtime.sync.exceptions import (
    InvalidRefreshIntervalError,
    InvalidResolutionError,
    InvalidWindowError,
)
from hostmon.runtime.sync.kinds import MetricKind
from hostmon.runtime.sync.monitoring_client import MonitoringClient
from hostmon.runtime.sync.refresh_scheduler import SchedulerState
from hostmon.runtime.sync.windows import TimeWindowSpec
from tests.hostmon.runtime.sync.helpers import HOST, base_ms, rows_at, ts


def _all_series(dash):
    return {
        (kind, entity, channel): dash.get_series(kind, entity, channel)
        for kind in MetricKind
        for entity in dash.entities(kind)
        for channel in dash.channels(kind, entity)
    }


@pytest.mark.asyncio
async def test_idle_until_host_selected(dashboard, fake_api):
    assert dashboard.state is SchedulerState.IDLE
    assert await dashboard.trigger_manual_refresh() is None
    assert fake_api.requests == []


@pytest.mark.asyncio
async def test_select_host_loads_then_becomes_active(dashboard, fake_api):
    base = base_ms()
    fake_api.add(rows_at(base, 0))

    report = await dashboard.select_host(HOST)

    assert report.mode == "historical"
    assert dashboard.state is SchedulerState.ACTIVE
    assert dashboard.generation == 1
    assert dashboard.host == HOST
    assert len(fake_api.requests) == 5
    assert dashboard.watermark("cpu") == ts(base, 0)
    assert dashboard.get_series("network", "ixgbe0", "rx") == [[base, 10.0]]
    assert list(dashboard.get_latest_snapshot("storage_io")) == ["rpool", "tank"]

    fake_api.add(rows_at(base, 1))
    report = await dashboard.trigger_manual_refresh()
    assert report.mode == "incremental"
    assert [p[0] for p in dashboard.get_series("network", "ixgbe0", "rx")] == [base, base + 5000]


@pytest.mark.asyncio
async def test_back_to_back_triggers_run_one_cycle(dashboard, fake_api):
    fake_api.add(rows_at(base_ms(), 0))
    await dashboard.select_host(HOST)
    fake_api.requests.clear()

    first, second = await asyncio.gather(
        dashboard.trigger_manual_refresh(), dashboard.trigger_manual_refresh()
    )

    assert first is not None and second is None
    assert len(fake_api.requests) == 5
    assert get_mapping_store(sync_metrics.sync_cycle_dropped_total)["incremental"] == 1


@pytest.mark.asyncio
async def test_stale_response_does_not_touch_new_context(dashboard, fake_api):
    base = base_ms()
    fake_api.add(rows_at(base, 0))
    await dashboard.select_host(HOST)

    fake_api.hold()
    stale = asyncio.create_task(dashboard.trigger_manual_refresh())
    await asyncio.wait_for(fake_api.all_held.wait(), timeout=5)

    # context switch while the incremental cycle is still in flight
    fake_api.hold_new_requests = False
    await dashboard.set_window("30min")
    assert dashboard.generation == 2
    assert dashboard.state is SchedulerState.ACTIVE
    current = _all_series(dashboard)
    marks = dashboard.watermarks.snapshot()

    fake_api.add(rows_at(base, 1))
    fake_api.release()
    report = await asyncio.wait_for(stale, timeout=5)

    assert report.discarded
    assert report.generation == 1
    assert _all_series(dashboard) == current
    assert dashboard.watermarks.snapshot() == marks
    assert get_mapping_store(sync_metrics.sync_stale_response_total)["incremental"] == 1


@pytest.mark.asyncio
async def test_window_change_resets_and_replaces(dashboard, fake_api):
    base = base_ms()
    for i in range(3):
        fake_api.add(rows_at(base, i))
    await dashboard.select_host(HOST)
    assert dashboard.table.capacity == 180

    fake_api.requests.clear()
    report = await dashboard.set_window("1min")

    assert report.mode == "historical"
    assert dashboard.window_spec == TimeWindowSpec("1min", "high")
    assert dashboard.table.capacity == 12
    assert len(fake_api.requests) == 5
    assert dashboard.watermark("arc") == ts(base, 2)
    assert len(dashboard.get_series("arc", "host", "size")) == 3

    await dashboard.set_resolution("low")
    assert dashboard.generation == 3
    assert fake_api.calls_for(MetricKind.ARC)[-1].url.params["limit"] == "5"


@pytest.mark.asyncio
async def test_invalid_control_input_changes_nothing(dashboard, fake_api):
    fake_api.add(rows_at(base_ms(), 0))
    await dashboard.select_host(HOST)
    series = _all_series(dashboard)

    with pytest.raises(InvalidWindowError):
        await dashboard.set_window("2weeks")
    with pytest.raises(InvalidResolutionError):
        await dashboard.set_resolution("ultra")
    with pytest.raises(InvalidRefreshIntervalError):
        dashboard.set_refresh_interval(7)

    assert dashboard.generation == 1
    assert dashboard.state is SchedulerState.ACTIVE
    assert _all_series(dashboard) == series


@pytest.mark.asyncio
async def test_total_failure_sets_error_until_next_success(dashboard, fake_api, caplog):
    for kind in MetricKind:
        fake_api.fail[kind] = 500

    with caplog.at_level(logging.ERROR, logger="hostmon.runtime.sync.refresh_scheduler"):
        await dashboard.select_host(HOST)

    assert dashboard.state is SchedulerState.ACTIVE
    assert dashboard.error == f"Unable to load monitoring data from {HOST}"
    assert any(r.getMessage() == "sync.cycle.unavailable" for r in caplog.records)
    assert all(w is None for w in dashboard.watermarks.snapshot().values())

    fake_api.fail.clear()
    fake_api.fail[MetricKind.ARC] = 500
    fake_api.add(rows_at(base_ms(), 0))
    await dashboard.trigger_manual_refresh()

    assert dashboard.error is None
    assert dashboard.watermark("arc") is None
    assert dashboard.watermark("memory") is not None


@pytest.mark.asyncio
async def test_on_error_callback_receives_failures(fake_api):
    seen = []
    dash = MetricsDashboard(
        MonitoringClient(transport=fake_api.transport()),
        refresh_interval=0,
        on_error=seen.append,
    )
    for kind in MetricKind:
        fake_api.fail[kind] = 503
    try:
        await dash.select_host(HOST)
    finally:
        await dash.aclose()

    assert len(seen) == 1
    assert seen[0].host == HOST
    assert set(seen[0].failures) == {kind.value for kind in MetricKind}


@pytest.mark.asyncio
async def test_deselect_returns_to_idle(dashboard, fake_api):
    fake_api.add(rows_at(base_ms(), 0))
    await dashboard.select_host(HOST)

    assert await dashboard.select_host(None) is None
    assert dashboard.state is SchedulerState.IDLE
    assert dashboard.entities("network") == []
    assert dashboard.get_latest_snapshot("network") == {}
    assert dashboard.watermark("network") is None


@pytest.mark.asyncio
async def test_timer_runs_incremental_cycles(fake_api):
    sleeps = []
    park = asyncio.Event()

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) > 1:
            await park.wait()

    base = base_ms()
    fake_api.add(rows_at(base, 0))
    dash = MetricsDashboard(
        MonitoringClient(transport=fake_api.transport()),
        refresh_interval=30,
        sleep=fake_sleep,
    )
    try:
        await dash.select_host(HOST)
        fake_api.add(rows_at(base, 1))
        for _ in range(5):
            await asyncio.sleep(0)
            await dash.scheduler.wait()

        assert sleeps[:2] == [30, 30]
        assert dash.watermark("cpu") == ts(base, 1)
        since = {r.url.params.get("since") for r in fake_api.calls_for(MetricKind.CPU)}
        assert ts(base, 0) in since
    finally:
        await dash.aclose()
    assert dash.scheduler._timer is None


@pytest.mark.asyncio
async def test_refresh_interval_change_restarts_timer(dashboard, fake_api):
    fake_api.add(rows_at(base_ms(), 0))
    await dashboard.select_host(HOST)
    assert dashboard.scheduler._timer is None

    dashboard.set_refresh_interval(300)
    timer = dashboard.scheduler._timer
    assert timer is not None and dashboard.refresh_interval == 300

    dashboard.set_refresh_interval(10)
    await asyncio.sleep(0)
    assert timer.cancelled()
    assert dashboard.scheduler._timer is not timer

    dashboard.set_refresh_interval(0)
    assert dashboard.scheduler._timer is None


@pytest.mark.asyncio
async def test_from_config_uses_dashboard_section(fake_api):
    from hostmon.foundation.config import config_from_mapping

    cfg = config_from_mapping(
        {"dashboard": {"window": "5min", "resolution": "medium", "refresh_interval_seconds": 0}},
        environ={},
    )
    dash = MetricsDashboard.from_config(cfg, transport=fake_api.transport())
    try:
        assert dash.window_spec == TimeWindowSpec("5min", "medium")
        assert dash.refresh_interval == 0
        assert dash.table.capacity == 60
    finally:
        await dash.aclose()


@pytest.mark.asyncio
async def test_slow_backfill_from_previous_host_is_dropped(dashboard, fake_api):
    previous_host = "http://hv02.test:5001/api"
    base = base_ms()
    fake_api.add(rows_at(base, 0))

    fake_api.hold()
    slow = asyncio.create_task(dashboard.select_host(previous_host))
    await asyncio.wait_for(fake_api.all_held.wait(), timeout=5)

    fake_api.hold_new_requests = False
    await dashboard.select_host(HOST)
    assert dashboard.generation == 2
    assert dashboard.state is SchedulerState.ACTIVE
    current = _all_series(dashboard)
    marks = dashboard.watermarks.snapshot()
    snapshot = dashboard.get_latest_snapshot("network")

    # the previous host answers late, with a scan the new host never served
    fake_api.add(rows_at(base, 1))
    fake_api.release()
    report = await asyncio.wait_for(slow, timeout=5)

    assert report.discarded
    assert report.generation == 1
    assert dashboard.host == HOST
    assert dashboard.state is SchedulerState.ACTIVE
    assert _all_series(dashboard) == current
    assert dashboard.watermarks.snapshot() == marks
    assert dashboard.watermark("cpu") == ts(base, 0)
    assert dashboard.get_latest_snapshot("network") == snapshot
    assert get_mapping_store(sync_metrics.sync_stale_response_total)["historical"] == 1
