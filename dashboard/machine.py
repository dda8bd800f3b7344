"""The single writer of all dashboard state."""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from api.types import ActivityLog, Device, Site

from .completions import CompletionsMixin
from .dispatcher import DispatchRequest
from .messages import Completed, KeyPress, Message, Resize, Tick
from .modals import CREATE_VARIABLE_ROW, ModalsMixin
from .model import (
    DEVICE_TABS,
    SETTINGS_ROWS,
    SITE_TABS,
    TOGGLE_SETTINGS,
    ActivityDetailView,
    AppState,
    DeviceDetailView,
    FieldKind,
    ListView,
    Modal,
    OptimisticEdit,
    PickerKind,
    SiteDetailView,
    TextInputModal,
    View,
    WizardKind,
)
from .reconcile import reconcile
from .slots import RequestCorrelation, Slot, SlotTracker

__all__ = ["AppStateMachine", "ALL_BACKENDS"]

LOGGER = logging.getLogger(__name__)

ALL_BACKENDS = frozenset({"rmm", "datto_av", "sophos", "rocket_cyber"})

UP_KEYS = ("up", "k")
DOWN_KEYS = ("down", "j")
BACK_KEYS = ("esc", "backspace", "h", "q")

_SETTING_FIELDS = {
    "name": FieldKind.SITE_NAME,
    "description": FieldKind.SITE_DESCRIPTION,
    "notes": FieldKind.SITE_NOTES,
}


def _keep_variables(site: Site, previous: Site) -> Site:
    if site.variables is None and previous.variables is not None:
        return replace(site, variables=previous.variables)
    return site

class AppStateMachine(ModalsMixin, CompletionsMixin):
    """
    Apply event channel messages to the application state.

    ``apply`` processes one message to completion and returns the dispatch
    requests it produced; nothing else mutates ``state``.
    """

    def __init__(
        self,
        page_size: int = 50,
        debounce_ms: int = 500,
        min_search_length: int = 3,
        enabled: Iterable[str] = ALL_BACKENDS,
    ) -> None:
        self.state = AppState()
        self.tracker = SlotTracker()
        self.page_size = page_size
        self.debounce_ms = debounce_ms
        self.min_search_length = min_search_length
        self.enabled: FrozenSet[str] = frozenset(enabled)
        self.should_quit = False
        self._outbox: List[DispatchRequest] = []

    # Entry points -----------------------------------------------------------

    def start(self) -> List[DispatchRequest]:
        """Initial requests: the first sites page plus the optional feeds."""
        self._load_sites(0)
        self._load_incidents()
        if "sophos" in self.enabled:
            self.state.sophos_tenants.start_loading()
            self._dispatch("sophos-tenants", ("sophos-tenants",))
        return self._flush()

    def apply(self, message: Message) -> List[DispatchRequest]:
        if isinstance(message, KeyPress):
            self._on_key(message)
        elif isinstance(message, Tick):
            self._on_tick(message)
        elif isinstance(message, Completed):
            self._on_completed(message)
        elif isinstance(message, Resize):
            self.state.width = message.width
            self.state.height = message.height
        return self._flush()

    def snapshot(self) -> AppState:
        """Deep copy for the renderer."""
        return copy.deepcopy(self.state)

    # Plumbing ---------------------------------------------------------------

    def _flush(self) -> List[DispatchRequest]:
        requests, self._outbox = self._outbox, []
        return requests

    def _dispatch(
        self,
        operation: str,
        slot: Slot,
        context: Optional[Dict[str, Any]] = None,
        **params: Any,
    ) -> RequestCorrelation:
        correlation = self.tracker.issue(slot, **(context or {}))
        self._outbox.append(DispatchRequest(operation=operation, correlation=correlation, params=params))
        return correlation

    def _set_status(self, message: str) -> None:
        self.state.status = message
        self.state.status_error = None

    def _set_error(self, message: str) -> None:
        self.state.status = None
        self.state.status_error = message

    def _open_modal(self, modal: Modal) -> bool:
        if self.state.modal is not None:
            LOGGER.debug(
                "Rejected %s while %s is open",
                type(modal).__name__,
                type(self.state.modal).__name__,
            )
            return False
        self.state.modal = modal
        return True

    def _reconcile(self) -> None:
        self.state.rows = reconcile(self.state.sites.items, self.state.incident_stats)

    def _find_site(self, site_uid: str) -> Optional[Site]:
        for site in self.state.sites.items:
            if site.uid == site_uid:
                return site
        if self.state.site is not None and self.state.site.uid == site_uid:
            return self.state.site
        return None

    def _replace_site(self, site: Site) -> None:
        """Swap in a new version of a site; unknown variables keep the old ones."""
        index = self.state.sites.index_where(lambda item: item.uid == site.uid)
        if index is not None:
            self.state.sites.set_item(index, _keep_variables(site, self.state.sites.items[index]))
        if self.state.site is not None and self.state.site.uid == site.uid:
            self.state.site = _keep_variables(site, self.state.site)
            self._refresh_variable_rows()
        self._reconcile()

    def _replace_device(self, device: Device) -> None:
        if self.state.device is not None and self.state.device.uid == device.uid:
            self.state.device = device
        index = self.state.devices.index_where(lambda item: item.uid == device.uid)
        if index is not None:
            self.state.devices.set_item(index, device)

    def _refresh_variable_rows(self) -> None:
        site = self.state.site
        variables = list(site.variables or ()) if site is not None else []
        self.state.variable_rows.refresh(variables + [CREATE_VARIABLE_ROW])

    # Loading ----------------------------------------------------------------

    def _load_sites(self, page: int) -> None:
        self.state.sites.start_loading()
        self._dispatch("sites", ("sites",), {"page": page}, page=page, max_results=self.page_size)

    def _load_incidents(self) -> None:
        if "rocket_cyber" not in self.enabled:
            return
        self.state.incidents.start_loading()
        self._dispatch("incidents", ("incidents",))

    def _load_site_variables(self, site_uid: str) -> None:
        if self.state.site is not None and self.state.site.uid == site_uid:
            self.state.variables_loading = True
            self.state.variables_error = None
        self._dispatch("site-variables", ("site-variables", site_uid), {"site_uid": site_uid}, site_uid=site_uid)

    def _load_site_panes(self, site: Site) -> None:
        context = {"site_uid": site.uid}
        self.state.devices.start_loading()
        self._dispatch("devices", ("devices",), context, site_uid=site.uid)
        self.state.site_alerts.start_loading()
        self._dispatch("site-alerts", ("site-alerts",), context, site_uid=site.uid)
        self._load_site_variables(site.uid)

    def _load_device_panes(self, device: Device) -> None:
        state = self.state
        context = {"device_uid": device.uid}
        state.device_alerts.start_loading()
        self._dispatch("device-alerts", ("device-alerts",), context, device_uid=device.uid)
        state.activities.start_loading()
        self._dispatch("activities", ("activities",), context, device=device)

        product = device.antivirus_product.lower()
        if "sophos" in product:
            if "sophos" in self.enabled:
                state.sophos_endpoint.start_loading()
                self._dispatch(
                    "sophos-endpoint",
                    ("sophos-endpoint",),
                    context,
                    device=device,
                    tenants=state.sophos_tenants.value,
                )
        elif "datto_av" in self.enabled:
            state.av_agent.start_loading()
            self._dispatch("av-agent", ("av-agent",), context, hostname=device.hostname)
        if "rocket_cyber" in self.enabled:
            state.rocket_agent.start_loading()
            self._dispatch("rocket-agent", ("rocket-agent",), context, hostname=device.hostname)

    def _load_job_result(self, log: ActivityLog) -> None:
        device = self.state.device
        self.state.job_rows.clear()
        self.state.job_output.reset()
        self.state.job_output_label = ""
        if not log.job_uid or device is None:
            self.state.job_result.reset()
            return
        self.state.job_result.start_loading()
        self._dispatch(
            "job-result",
            ("job-result",),
            {"job_uid": log.job_uid},
            job_uid=log.job_uid,
            device_uid=device.uid,
        )

    # Navigation -------------------------------------------------------------

    def _go_back(self) -> None:
        view = self.state.view
        parent = getattr(view, "parent", None)
        if parent is not None:
            self.state.view = parent

    def _open_site(self, site: Site) -> None:
        state = self.state
        state.view = SiteDetailView(site_uid=site.uid, parent=ListView())
        state.site = site
        state.site_tab = 0
        state.settings_cursor = 0
        state.devices.clear()
        state.site_alerts.clear()
        state.variable_rows.clear()
        self._refresh_variable_rows()
        self._load_site_panes(site)

    def _open_device(self, device: Device, parent: View) -> None:
        state = self.state
        state.view = DeviceDetailView(device_uid=device.uid, parent=parent)
        state.device = device
        state.device_tab = 0
        state.device_alerts.clear()
        state.activities.clear()
        state.av_agent.reset()
        state.sophos_endpoint.reset()
        state.rocket_agent.reset()
        self._load_device_panes(device)

    def _open_activity(self, log: ActivityLog) -> None:
        self.state.view = ActivityDetailView(log=log, parent=self.state.view)
        self._load_job_result(log)

    # Messages ---------------------------------------------------------------

    def _on_tick(self, tick: Tick) -> None:
        self._debounce_search(tick.now)

    def _on_key(self, key: KeyPress) -> None:
        if self.state.modal is not None:
            self._on_modal_key(key)
            return
        view = self.state.view
        if isinstance(view, ListView):
            self._on_list_key(key.code)
        elif isinstance(view, SiteDetailView):
            self._on_site_key(key.code)
        elif isinstance(view, DeviceDetailView):
            self._on_device_key(key.code)
        elif isinstance(view, ActivityDetailView):
            self._on_activity_key(key.code)

    def _on_list_key(self, code: str) -> None:
        sites = self.state.sites
        if code == "q":
            self.should_quit = True
        elif code in UP_KEYS:
            sites.prev()
        elif code in DOWN_KEYS:
            sites.next()
        elif code in ("right", "n"):
            if sites.page + 1 < sites.total_pages:
                self._load_sites(sites.page + 1)
        elif code in ("left", "p"):
            if sites.page > 0:
                self._load_sites(sites.page - 1)
        elif code == "enter":
            site = sites.current
            if site is not None:
                self._open_site(site)
        elif code == "r":
            self.state.status_error = None
            self._load_sites(sites.page)
            self._load_incidents()
        elif code == "/":
            self._open_picker(PickerKind.DEVICE_SEARCH)

    def _site_tab_list(self):
        tab = SITE_TABS[self.state.site_tab]
        if tab == "Devices":
            return self.state.devices
        if tab == "Alerts":
            return self.state.site_alerts
        if tab == "Variables":
            return self.state.variable_rows
        return None

    def _on_site_key(self, code: str) -> None:
        state = self.state
        tab = SITE_TABS[state.site_tab]
        if code == "tab":
            state.site_tab = (state.site_tab + 1) % len(SITE_TABS)
        elif code in UP_KEYS or code in DOWN_KEYS:
            step = -1 if code in UP_KEYS else 1
            pane = self._site_tab_list()
            if pane is None:
                state.settings_cursor = (state.settings_cursor + step) % len(SETTINGS_ROWS)
            elif step < 0:
                pane.prev()
            else:
                pane.next()
        elif code == "enter":
            self._on_site_enter(tab)
        elif code == " ":
            if tab == "Settings" and SETTINGS_ROWS[state.settings_cursor] in TOGGLE_SETTINGS:
                self._toggle_setting(SETTINGS_ROWS[state.settings_cursor])
        elif code == "r":
            state.status_error = None
            if state.site is not None:
                self._load_site_panes(state.site)
        elif code == "/":
            self._open_picker(PickerKind.DEVICE_SEARCH)
        elif code in BACK_KEYS:
            self._go_back()

    def _on_site_enter(self, tab: str) -> None:
        state = self.state
        site = state.site
        if site is None:
            return
        if tab == "Devices":
            device = state.devices.current
            if device is not None:
                self._open_device(device, state.view)
        elif tab == "Variables":
            row = state.variable_rows.current
            if row == CREATE_VARIABLE_ROW:
                self._open_wizard(WizardKind.CREATE_VARIABLE, site.uid)
            elif row is not None:
                self._open_modal(
                    TextInputModal(
                        kind=FieldKind.VARIABLE_VALUE,
                        buffer=row.value,
                        target=(site.uid, row),
                        original=row.value,
                    )
                )
        elif tab == "Settings":
            field_name = SETTINGS_ROWS[state.settings_cursor]
            if field_name in TOGGLE_SETTINGS:
                self._toggle_setting(field_name)
            else:
                value = getattr(site, field_name) or ""
                self._open_modal(
                    TextInputModal(
                        kind=_SETTING_FIELDS[field_name],
                        buffer=value,
                        target=site.uid,
                        original=value,
                    )
                )

    def _on_device_key(self, code: str) -> None:
        state = self.state
        device = state.device
        pane = state.device_alerts if DEVICE_TABS[state.device_tab] == "Open Alerts" else state.activities
        if code == "tab":
            state.device_tab = (state.device_tab + 1) % len(DEVICE_TABS)
        elif code in UP_KEYS:
            pane.prev()
        elif code in DOWN_KEYS:
            pane.next()
        elif code == "enter":
            if pane is state.activities and state.activities.current is not None:
                self._open_activity(state.activities.current)
        elif code == "a":
            self._open_picker(PickerKind.QUICK_ACTIONS)
        elif code == "u" and device is not None:
            value = device.udf[0] or ""
            self._open_modal(TextInputModal(kind=FieldKind.UDF, buffer=value, target=device.uid, original=value))
        elif code == "w" and device is not None:
            self._open_warranty_input()
        elif code == "r":
            state.status_error = None
            if device is not None:
                self._load_device_panes(device)
        elif code in BACK_KEYS:
            self._go_back()

    def _on_activity_key(self, code: str) -> None:
        state = self.state
        view = state.view
        if code in UP_KEYS:
            state.job_rows.prev()
        elif code in DOWN_KEYS:
            state.job_rows.next()
        elif code == "enter":
            row = state.job_rows.current
            device = state.device
            log = view.log
            if row is None or row[0] == "component" or device is None or not log.job_uid:
                return
            kind, _, name = row
            state.job_output.start_loading()
            state.job_output_label = f"{name} {kind}"
            self._dispatch(
                "job-output",
                ("job-output",),
                {"stream": kind},
                job_uid=log.job_uid,
                device_uid=device.uid,
                stream=kind,
            )
        elif code == "r":
            self._load_job_result(view.log)
        elif code in BACK_KEYS:
            self._go_back()

    # Writes -----------------------------------------------------------------

    def _toggle_setting(self, field_name: str) -> None:
        """Flip a boolean site setting locally, then write it."""
        state = self.state
        if state.site is None:
            return
        site = self._find_site(state.site.uid)
        before = getattr(site, field_name)
        after = not before
        slot = ("site-setting", site.uid, field_name)
        state.pending_edits[slot] = OptimisticEdit(
            slot=slot, site_uid=site.uid, field=field_name, snapshot=before, applied=after
        )
        self._replace_site(replace(site, **{field_name: after}))
        self._dispatch(
            "update-site",
            slot,
            {"site_uid": site.uid, "field": field_name},
            site=site,
            changes={field_name: after},
        )
