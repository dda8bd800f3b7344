"""Tests for rendering state snapshots with rich."""

from __future__ import annotations

import io
import sys
from pathlib import Path
from queue import Queue
from unittest.mock import Mock

import pytest
from rich.console import Console

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api import Backends
from api.types import ActivityLog, Device, DevicesStatus, PageDetails, Site, SitesPage, SiteVariable
from common.config import Config, DattoConfig
from dashboard.dispatcher import DispatchRequest
from dashboard.messages import Completed, EventChannel, KeyPress
from dashboard.model import (
    ActivityDetailView,
    AppState,
    DeviceDetailView,
    ListPickerModal,
    OptimisticEdit,
    PickerKind,
    SiteDetailView,
    WizardKind,
    WizardModal,
)
from dashboard.reconcile import IncidentStats, SiteRow
from ui_service.render import format_timestamp, render_ui
from ui_service.ui import DashboardApp, enabled_backends


def render_text(state: AppState) -> str:
    console = Console(record=True, width=140, height=40, file=io.StringIO(), color_system=None)
    console.print(render_ui(state))
    return console.export_text()


def test_site_list():
    state = AppState()
    site = Site(uid="s1", name="Acme Corp", devices_status=DevicesStatus(5, 4, 1))
    state.sites.replace([site])
    state.sites.total_count = 1
    state.rows = [SiteRow(site=site, lookup_key="acme corp", stats=IncidentStats(active=2, resolved=7), color="gray")]

    text = render_text(state)

    assert "RMM Dashboard" in text
    assert "Sites (page 1/1) - 1 total" in text
    assert "Acme Corp" in text
    assert "Resolved Inc." in text
    assert "q quit" in text


def test_site_list_loading():
    state = AppState()
    state.sites.start_loading()
    assert "Loading..." in render_text(state)


def test_site_settings_show_pending_toggle():
    state = AppState()
    site = Site(uid="s1", name="Acme Corp", on_demand=True, variables=(SiteVariable(1, "secret", "x", True),))
    state.site = site
    state.view = SiteDetailView(site_uid="s1")
    state.site_tab = 3
    slot = ("site-setting", "s1", "on_demand")
    state.pending_edits[slot] = OptimisticEdit(slot=slot, site_uid="s1", field="on_demand", snapshot=False, applied=True)

    text = render_text(state)

    assert "Sites > Acme Corp" in text
    assert "On Demand" in text
    assert "Yes (saving)" in text


def test_masked_variable_is_hidden():
    state = AppState()
    site = Site(uid="s1", name="Acme Corp", variables=(SiteVariable(1, "secret", "hunter2", True),))
    state.site = site
    state.view = SiteDetailView(site_uid="s1")
    state.site_tab = 2
    state.variable_rows.replace(list(site.variables) + ["+ Create new"])

    text = render_text(state)

    assert "hunter2" not in text
    assert "******" in text
    assert "+ Create new" in text


def test_device_detail_and_activity():
    state = AppState()
    device = Device(uid="d1", hostname="HOST-1", site_name="Acme Corp", online=True, udf=("rack 3",) + (None,) * 29)
    state.device = device
    state.view = DeviceDetailView(device_uid="d1")
    state.av_agent.error = "Datto AV is not configured"

    text = render_text(state)
    assert "HOST-1" in text
    assert "1=rack 3" in text
    assert "Datto AV: Datto AV is not configured" in text

    log = ActivityLog(id="1", category="job", details={"job.name": "Cleanup", "note": "ok"})
    state.view = ActivityDetailView(log=log, parent=state.view)
    text = render_text(state)
    assert "Sites > HOST-1 > Activity" in text
    assert "Cleanup" in text
    assert "note: ok" in text


def test_wizard_and_picker():
    state = AppState()
    state.modal = WizardModal(kind=WizardKind.CREATE_VARIABLE, target="s1", steps=["name", "value", "masked", "result"])
    state.modal.buffer = "region"
    text = render_text(state)
    assert "Create Variable" in text
    assert "Step 1/4" in text
    assert "Name: region_" in text

    picker = ListPickerModal(kind=PickerKind.QUICK_ACTIONS)
    picker.results.replace(["Run Component", "Reload Data"])
    state.modal = picker
    text = render_text(state)
    assert "Quick Actions" in text
    assert "> Run Component" in text


def test_format_timestamp():
    assert format_timestamp(None) == "-"
    assert format_timestamp("2024-01-01") == "2024-01-01"
    assert format_timestamp(1_700_000_000_000) == format_timestamp(1_700_000_000)


# Event loop -------------------------------------------------------------------

class _RecordingDispatcher:
    def __init__(self):
        self.requests: Queue = Queue()

    def dispatch(self, request: DispatchRequest):
        self.requests.put(request)


@pytest.fixture
def app():
    config = Config(datto=DattoConfig(api_url="https://rmm.test", api_key="k", secret_key="s"))
    channel = EventChannel()
    dispatcher = _RecordingDispatcher()
    dashboard = DashboardApp(
        config,
        Backends(rmm=Mock()),
        console=Console(file=io.StringIO()),
        channel=channel,
        dispatcher=dispatcher,
    )
    return dashboard, channel, dispatcher


def test_enabled_backends():
    assert enabled_backends(Backends(rmm=Mock())) == {"rmm"}
    assert enabled_backends(Backends(rmm=Mock(), sophos=Mock(), rocket_cyber=Mock())) == {
        "rmm",
        "sophos",
        "rocket_cyber",
    }


def test_step_applies_messages_and_dispatches(app):
    dashboard, channel, dispatcher = app
    for request in dashboard.machine.start():
        dispatcher.dispatch(request)
    sites = dispatcher.requests.get_nowait()

    page = SitesPage(sites=[Site(uid="s1", name="Acme")], page_details=PageDetails(count=1, total_count=1))
    channel.post(Completed(sites.correlation, value=page))
    assert dashboard.step(timeout=0.1)
    assert dispatcher.requests.get_nowait().operation == "site-variables"
    assert dashboard.machine.state.sites.current.name == "Acme"


def test_step_without_message_keeps_running(app):
    dashboard, _, _ = app
    assert dashboard.step(timeout=0.01)


def test_ctrl_c_and_q_quit(app):
    dashboard, channel, _ = app
    channel.post(KeyPress("ctrl+c"))
    assert not dashboard.step(timeout=0.1)

    dashboard.machine.should_quit = False
    channel.post(KeyPress("q"))
    assert not dashboard.step(timeout=0.1)
