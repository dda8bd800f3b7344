"""Render an application state snapshot with rich."""

from __future__ import annotations

import datetime
from typing import Any, List, Optional

from rich.align import Align
from rich.console import Group
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dashboard.model import (
    DEVICE_TABS,
    SETTINGS_LABELS,
    SETTINGS_ROWS,
    SITE_TABS,
    ActivityDetailView,
    AppState,
    DeviceDetailView,
    ListPickerModal,
    Loadable,
    PaginatedList,
    PickerKind,
    SiteDetailView,
    TextInputModal,
    WizardKind,
    WizardModal,
)
from dashboard.modals import CREATE_VARIABLE_ROW

TITLE = "RMM Dashboard"

_PRIORITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "moderate": "yellow",
    "low": "cyan",
    "information": "dim",
}

_PICKER_TITLES = {
    PickerKind.DEVICE_SEARCH: "Search Devices",
    PickerKind.SITE_MOVE: "Move Device to Site",
    PickerKind.QUICK_ACTIONS: "Quick Actions",
}


def create_ui_layout() -> Layout:
    layout = Layout()
    layout.split_column(
        Layout(name="header", size=3),
        Layout(name="body"),
        Layout(name="footer", size=1),
    )
    return layout


def format_timestamp(value: Any) -> str:
    """Format epoch seconds or milliseconds; pass strings through."""
    if value is None or value == "":
        return "-"
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.datetime.fromtimestamp(seconds).strftime("%Y-%m-%d %H:%M")
    return str(value)


def _pane_status(pane, empty: str) -> Optional[Text]:
    if pane.error:
        return Text(f"Error: {pane.error}", style="red")
    if pane.loading and not getattr(pane, "items", None) and getattr(pane, "value", None) is None:
        return Text("Loading...", style="dim")
    if isinstance(pane, PaginatedList) and not pane.items:
        return Text(empty, style="dim")
    return None


def _table(*columns: str) -> Table:
    table = Table(expand=True, header_style="bold cyan", border_style="cyan", show_lines=False)
    for column in columns:
        table.add_column(column, overflow="ellipsis", no_wrap=True)
    return table


def _row_style(index: int, selected: Optional[int], base: Optional[str] = None) -> Optional[str]:
    if index == selected:
        return "reverse"
    # rich has no plain "gray"
    if base == "gray":
        return "grey50"
    return base


def render_ui(state: AppState) -> Layout:
    layout = create_ui_layout()
    layout["header"].update(_render_header(state))
    if state.modal is not None:
        body = _render_modal(state)
    else:
        body = _render_view(state)
    layout["body"].update(body)
    layout["footer"].update(_render_footer(state))
    return layout


def _render_header(state: AppState) -> Panel:
    text = Text()
    text.append(TITLE, style="bold cyan")
    text.append("  ")
    text.append(_breadcrumb(state), style="bold white")
    loading = state.sites.loading or state.devices.loading or state.activities.loading
    if loading:
        text.append("  [loading]", style="yellow")
    if state.status_error:
        text.append(f"  {state.status_error}", style="bold red")
    elif state.status:
        text.append(f"  {state.status}", style="green")
    return Panel(text, border_style="cyan", padding=(0, 1))


def _breadcrumb(state: AppState) -> str:
    view = state.view
    parts = ["Sites"]
    if isinstance(view, (SiteDetailView, DeviceDetailView, ActivityDetailView)) and state.site is not None:
        if isinstance(view, SiteDetailView) or isinstance(getattr(view, "parent", None), SiteDetailView):
            parts.append(state.site.name)
    if isinstance(view, (DeviceDetailView, ActivityDetailView)) and state.device is not None:
        parts.append(state.device.hostname)
    if isinstance(view, ActivityDetailView):
        parts.append("Activity")
    return " > ".join(parts)


def _render_view(state: AppState):
    view = state.view
    if isinstance(view, SiteDetailView):
        return _render_site_detail(state)
    if isinstance(view, DeviceDetailView):
        return _render_device_detail(state)
    if isinstance(view, ActivityDetailView):
        return _render_activity_detail(state, view)
    return _render_site_list(state)


# List ---------------------------------------------------------------------

def _render_site_list(state: AppState) -> Panel:
    sites = state.sites
    status = _pane_status(sites, "No sites")
    title = f"Sites (page {sites.page + 1}/{sites.total_pages})"
    if sites.total_count is not None:
        title += f" - {sites.total_count} total"
    if status is not None and not state.rows:
        return Panel(status, title=title, border_style="cyan")
    table = _table("Site", "Devices", "Online", "Offline", "Active Inc.", "Resolved Inc.")
    for index, row in enumerate(state.rows):
        devices = row.site.devices_status
        table.add_row(
            row.site.name,
            str(devices.number_of_devices) if devices else "-",
            str(devices.number_of_online_devices) if devices else "-",
            str(devices.number_of_offline_devices) if devices else "-",
            str(row.stats.active),
            str(row.stats.resolved),
            style=_row_style(index, sites.selected, row.color),
        )
    items: List[Any] = [table]
    if state.incidents.error:
        items.append(Text(f"Incidents: {state.incidents.error}", style="red"))
    if sites.error:
        items.append(Text(f"Error: {sites.error}", style="red"))
    return Panel(Group(*items), title=title, border_style="cyan")


# Site detail --------------------------------------------------------------

def _tabs(names, active: int) -> Text:
    text = Text()
    for index, name in enumerate(names):
        style = "bold black on cyan" if index == active else "dim"
        text.append(f" {name} ", style=style)
        text.append(" ")
    return text


def _render_site_detail(state: AppState) -> Panel:
    site = state.site
    if site is None:
        return Panel(Text("Site not found", style="red"), border_style="red")
    tab = SITE_TABS[state.site_tab]
    if tab == "Devices":
        content = _render_devices(state.devices)
    elif tab == "Alerts":
        content = _render_alerts(state.site_alerts, show_device=True)
    elif tab == "Variables":
        content = _render_variables(state)
    else:
        content = _render_settings(state)
    return Panel(
        Group(_tabs(SITE_TABS, state.site_tab), content),
        title=site.name,
        border_style="cyan",
    )


def _render_devices(devices: PaginatedList) -> Any:
    status = _pane_status(devices, "No devices")
    if status is not None:
        return status
    table = _table("Hostname", "Status", "Type", "OS", "Last User", "Patches", "AV")
    for index, device in enumerate(devices.items):
        patch = device.patch_management.patch_status if device.patch_management else "-"
        table.add_row(
            device.hostname,
            Text("Online", style="green") if device.online else Text("Offline", style="red"),
            device.device_type or "-",
            device.operating_system or "-",
            device.last_logged_in_user or "-",
            patch or "-",
            device.antivirus_product or "-",
            style=_row_style(index, devices.selected),
        )
    return table


def _render_alerts(alerts: PaginatedList, show_device: bool = False) -> Any:
    status = _pane_status(alerts, "No open alerts")
    if status is not None:
        return status
    columns = ["Priority", "Time", "Diagnostics"]
    if show_device:
        columns.insert(1, "Device")
    table = _table(*columns)
    for index, alert in enumerate(alerts.items):
        cells = [
            Text(alert.priority, style=_PRIORITY_STYLES.get(alert.priority.lower(), "")),
            format_timestamp(alert.timestamp),
            alert.diagnostics,
        ]
        if show_device:
            cells.insert(1, alert.device_name or "-")
        table.add_row(*cells, style=_row_style(index, alerts.selected))
    return table


def _render_variables(state: AppState) -> Any:
    if state.variables_error:
        return Text(f"Error: {state.variables_error}", style="red")
    rows = state.variable_rows
    table = _table("Name", "Value")
    for index, row in enumerate(rows.items):
        if row == CREATE_VARIABLE_ROW:
            table.add_row(Text(CREATE_VARIABLE_ROW, style="green"), "", style=_row_style(index, rows.selected))
            continue
        value = "******" if row.masked else row.value
        table.add_row(row.name, value, style=_row_style(index, rows.selected))
    if state.variables_loading:
        return Group(table, Text("Loading...", style="dim"))
    return table


def _render_settings(state: AppState) -> Table:
    site = state.site
    table = _table("Setting", "Value")
    for index, field_name in enumerate(SETTINGS_ROWS):
        value = getattr(site, field_name)
        if isinstance(value, bool):
            cell = Text("Yes", style="green") if value else Text("No", style="red")
            if any(edit.site_uid == site.uid and edit.field == field_name for edit in state.pending_edits.values()):
                cell.append(" (saving)", style="yellow")
        else:
            cell = Text(value or "-")
        table.add_row(SETTINGS_LABELS[field_name], cell, style=_row_style(index, state.settings_cursor))
    return table


# Device detail ------------------------------------------------------------

def _loadable_line(label: str, loadable: Loadable, describe) -> Text:
    text = Text()
    text.append(f"{label}: ", style="bold cyan")
    if loadable.error:
        text.append(loadable.error, style="red")
    elif loadable.loading:
        text.append("loading...", style="dim")
    elif loadable.value is None:
        text.append("not found", style="dim")
    else:
        text.append(describe(loadable.value), style="green")
    return text


def _render_device_detail(state: AppState) -> Panel:
    device = state.device
    if device is None:
        return Panel(Text("Device not found", style="red"), border_style="red")
    info = Text()
    info.append("Status: ", style="bold cyan")
    info.append("Online" if device.online else "Offline", style="green" if device.online else "red")
    info.append("  OS: ", style="bold cyan")
    info.append(device.operating_system or "-")
    info.append("  Site: ", style="bold cyan")
    info.append(device.site_name or "-")
    info.append("\nIP: ", style="bold cyan")
    info.append(f"{device.int_ip_address or '-'} / {device.ext_ip_address or '-'}")
    info.append("  Warranty: ", style="bold cyan")
    info.append(device.warranty_date or "-")
    info.append("  Last seen: ", style="bold cyan")
    info.append(format_timestamp(device.last_seen))
    udfs = [f"{index + 1}={value}" for index, value in enumerate(device.udf) if value]
    if udfs:
        info.append("\nUDF: ", style="bold cyan")
        info.append(", ".join(udfs))

    security = [
        _loadable_line("Datto AV", state.av_agent, lambda agent: f"{agent.status or 'unknown'} (alerts: {agent.alert_count})"),
        _loadable_line(
            "Sophos",
            state.sophos_endpoint,
            lambda endpoint: f"{endpoint.health}{' - isolated' if endpoint.isolated else ''}",
        ),
        _loadable_line("RocketCyber", state.rocket_agent, lambda agent: f"{agent.connectivity} {agent.agent_version}"),
    ]

    if DEVICE_TABS[state.device_tab] == "Open Alerts":
        pane = _render_alerts(state.device_alerts)
    else:
        pane = _render_activities(state.activities)
    return Panel(
        Group(info, *security, Text(""), _tabs(DEVICE_TABS, state.device_tab), pane),
        title=device.hostname,
        border_style="cyan",
    )


def _render_activities(activities: PaginatedList) -> Any:
    status = _pane_status(activities, "No activity")
    if status is not None:
        return status
    table = _table("Date", "Category", "Action", "User", "Job")
    for index, log in enumerate(activities.items):
        table.add_row(
            format_timestamp(log.date),
            log.category or "-",
            log.action or "-",
            log.user_name or "-",
            log.job_name or "-",
            style=_row_style(index, activities.selected),
        )
    return table


# Activity detail ----------------------------------------------------------

def _render_activity_detail(state: AppState, view: ActivityDetailView) -> Panel:
    log = view.log
    text = Text()
    for label, value in (
        ("Date", format_timestamp(log.date)),
        ("Entity", log.entity),
        ("Category", log.category),
        ("Action", log.action),
        ("User", log.user_name),
        ("Site", log.site_name),
        ("Job", log.job_name),
        ("Job status", log.job_status),
    ):
        text.append(f"{label}: ", style="bold cyan")
        text.append(f"{value or '-'}\n")
    for key, value in log.extra_details():
        text.append(f"{key}: ", style="cyan")
        text.append(f"{value}\n", style="dim")

    items: List[Any] = [text]
    job = state.job_result
    if log.job_uid:
        if job.error:
            items.append(Text(f"Job result: {job.error}", style="red"))
        elif job.loading:
            items.append(Text("Loading job result...", style="dim"))
        elif job.value is not None:
            items.append(_render_job_rows(state))
    output = state.job_output
    if output.loading or output.error or output.value is not None:
        body = Text()
        body.append(f"{state.job_output_label}\n", style="bold cyan")
        if output.error:
            body.append(output.error, style="red")
        elif output.loading:
            body.append("Loading...", style="dim")
        else:
            body.append("\n".join(item.std_data for item in output.value) or "(empty)")
        items.append(Panel(body, border_style="dim"))
    return Panel(Group(*items), title="Activity", border_style="cyan")


def _render_job_rows(state: AppState) -> Text:
    job = state.job_result.value
    text = Text()
    text.append(f"Deployment: {job.job_deployment_status or '-'}  Ran: {format_timestamp(job.ran_on)}\n", style="bold")
    rows = state.job_rows
    for index, (kind, component_index, name) in enumerate(rows.items):
        prefix = "> " if index == rows.selected else "  "
        if kind == "component":
            result = job.component_results[component_index]
            text.append(f"{prefix}{name}: {result.component_status or '-'}\n", style="bold white")
        else:
            text.append(f"{prefix}    view {kind}\n", style="cyan")
    return text


# Modals -------------------------------------------------------------------

def _render_modal(state: AppState) -> Panel:
    modal = state.modal
    if isinstance(modal, TextInputModal):
        return _render_text_input(modal)
    if isinstance(modal, WizardModal):
        return _render_wizard(modal)
    return _render_picker(modal)


def _render_text_input(modal: TextInputModal) -> Panel:
    title = modal.kind.value.capitalize()
    if modal.kind.value == "udf":
        title = f"UDF {modal.udf_index + 1} (Left/Right to change)"
    elif modal.kind.value == "warranty":
        title = "Warranty date (YYYY-MM-DD, empty clears)"
    elif modal.kind.value == "variable":
        title = f"Variable {modal.target[1].name}"
    text = Text()
    text.append(modal.buffer)
    text.append("_", style="blink")
    if modal.error:
        text.append(f"\n\n{modal.error}", style="red")
    return Panel(Align.center(text, vertical="middle"), title=title, border_style="yellow")


def _render_wizard(wizard: WizardModal) -> Panel:
    title = "Create Variable" if wizard.kind == WizardKind.CREATE_VARIABLE else "Run Component"
    step = wizard.current_step
    text = Text()
    text.append(f"Step {min(wizard.step + 1, len(wizard.steps))}/{len(wizard.steps)}\n\n", style="dim")
    if step == "result":
        if wizard.pending:
            text.append("Pending...", style="yellow")
        elif wizard.error:
            text.append(f"Error: {wizard.error}", style="red")
        else:
            text.append(wizard.result or "Done", style="green")
        return Panel(text, title=title, border_style="yellow")
    if step == "component":
        text.append(f"Filter: {wizard.buffer}_\n\n", style="bold")
        if not wizard.options.items:
            text.append("No components\n", style="dim")
        for index, component in enumerate(wizard.options.items):
            prefix = "> " if index == wizard.options.selected else "  "
            text.append(f"{prefix}{component.name}\n", style="bold white" if index == wizard.options.selected else "dim")
    elif step == "masked":
        text.append("Masked? (y/n): ", style="bold")
        text.append(wizard.buffer or "n")
    elif step == "review":
        text.append("Review\n\n", style="bold")
        for key, value in wizard.collected.items():
            label = key[4:] if key.startswith("var:") else key
            text.append(f"{label}: {value}\n")
        text.append("\nEnter to run", style="dim")
    else:
        label = step[4:] if step.startswith("var:") else step
        text.append(f"{label.capitalize()}: ", style="bold")
        text.append(f"{wizard.buffer}_")
    if wizard.error:
        text.append(f"\n\n{wizard.error}", style="red")
    return Panel(text, title=title, border_style="yellow")


def _render_picker(picker: ListPickerModal) -> Panel:
    text = Text()
    text.append(f"> {picker.query}_\n\n", style="bold")
    results = picker.results
    if results.error:
        text.append(f"Error: {results.error}", style="red")
    elif results.loading:
        text.append("Searching...", style="dim")
    elif not results.items:
        hint = "No results" if picker.last_dispatched or picker.kind == PickerKind.QUICK_ACTIONS else "Type to search"
        text.append(hint, style="dim")
    for index, item in enumerate(results.items):
        prefix = "> " if index == results.selected else "  "
        if isinstance(item, str):
            label = item
        elif hasattr(item, "hostname"):
            label = f"{item.hostname} ({item.site_name or '-'})"
        else:
            label = item.name
        text.append(f"{prefix}{label}\n", style="bold white" if index == results.selected else "dim")
    return Panel(text, title=_PICKER_TITLES[picker.kind], border_style="yellow")


# Footer -------------------------------------------------------------------

def _render_footer(state: AppState) -> Text:
    if state.modal is not None:
        hints = "Enter submit | Esc cancel"
        if isinstance(state.modal, ListPickerModal):
            hints = "Type to filter | Up/Down select | Enter choose | Esc close"
    elif isinstance(state.view, SiteDetailView):
        hints = "Tab switch | Up/Down move | Enter open/edit | Space toggle | r reload | / search | Esc back"
    elif isinstance(state.view, DeviceDetailView):
        hints = "Tab switch | Enter open | a actions | u UDF | w warranty | r reload | Esc back"
    elif isinstance(state.view, ActivityDetailView):
        hints = "Up/Down move | Enter view output | r reload | Esc back"
    else:
        hints = "Up/Down move | Left/Right page | Enter open | r reload | / search | q quit"
    return Text(f"Ctrl+C exit | {hints}", style="dim")
