"""Apply backend completions to the application state."""

from __future__ import annotations

import logging
from dataclasses import replace

from .messages import Completed
from .model import SETTINGS_LABELS, ListPickerModal, WizardKind, WizardModal, build_job_rows
from .reconcile import build_incident_stats

LOGGER = logging.getLogger(__name__)


class CompletionsMixin:
    """Completion behaviour of ``AppStateMachine``, one handler per slot kind."""

    def _on_completed(self, message: Completed) -> None:
        if not self.tracker.is_current(message.correlation):
            return
        kind = message.correlation.slot[0]
        handler = getattr(self, "_complete_" + str(kind).replace("-", "_"), None)
        if handler is None:
            LOGGER.debug("No completion handler for slot %s", message.correlation.slot)
            return
        handler(message)

    # Lists ------------------------------------------------------------------

    def _complete_sites(self, message: Completed) -> None:
        sites = self.state.sites
        if not message.ok:
            sites.fail(message.error)
            return
        page = message.value
        sites.replace(page.sites)
        sites.page = message.correlation.context.get("page", 0)
        sites.total_pages = page.page_details.total_pages(self.page_size)
        sites.total_count = page.page_details.total_count
        if self.state.site is not None:
            fresh = self._find_site(self.state.site.uid)
            if fresh is not None:
                self.state.site = replace(fresh, variables=self.state.site.variables)
        # fresh site objects carry no variables; ask again for every site
        for site in page.sites:
            self._load_site_variables(site.uid)
        self._reconcile()

    def _complete_site_variables(self, message: Completed) -> None:
        site_uid = message.correlation.context["site_uid"]
        opened = self.state.site is not None and self.state.site.uid == site_uid
        if not message.ok:
            if opened:
                self.state.variables_loading = False
                self.state.variables_error = message.error
            return
        variables = tuple(message.value)
        index = self.state.sites.index_where(lambda item: item.uid == site_uid)
        if index is not None:
            self.state.sites.set_item(index, replace(self.state.sites.items[index], variables=variables))
        if opened:
            self.state.site = replace(self.state.site, variables=variables)
            self.state.variables_loading = False
            self.state.variables_error = None
            self._refresh_variable_rows()
        self._reconcile()

    def _complete_incidents(self, message: Completed) -> None:
        incidents = self.state.incidents
        if not message.ok:
            incidents.fail(message.error)
            return
        incidents.resolve(list(message.value))
        self.state.incident_stats = build_incident_stats(message.value)
        self._reconcile()

    def _complete_list(self, pane, message: Completed) -> None:
        if message.ok:
            pane.replace(message.value)
        else:
            pane.fail(message.error)

    def _complete_devices(self, message: Completed) -> None:
        self._complete_list(self.state.devices, message)

    def _complete_site_alerts(self, message: Completed) -> None:
        self._complete_list(self.state.site_alerts, message)

    def _complete_device_alerts(self, message: Completed) -> None:
        self._complete_list(self.state.device_alerts, message)

    def _complete_activities(self, message: Completed) -> None:
        self._complete_list(self.state.activities, message)

    def _complete_search(self, message: Completed) -> None:
        picker = self.state.modal
        if not isinstance(picker, ListPickerModal) or picker.kind.value != message.correlation.slot[1]:
            return
        self._complete_list(picker.results, message)

    # Single values ----------------------------------------------------------

    def _complete_value(self, loadable, message: Completed) -> None:
        if message.ok:
            loadable.resolve(message.value)
        else:
            loadable.fail(message.error)

    def _complete_job_result(self, message: Completed) -> None:
        self._complete_value(self.state.job_result, message)
        if message.ok:
            self.state.job_rows.replace(build_job_rows(message.value))

    def _complete_job_output(self, message: Completed) -> None:
        self._complete_value(self.state.job_output, message)

    def _complete_av_agent(self, message: Completed) -> None:
        self._complete_value(self.state.av_agent, message)

    def _complete_sophos_endpoint(self, message: Completed) -> None:
        self._complete_value(self.state.sophos_endpoint, message)

    def _complete_rocket_agent(self, message: Completed) -> None:
        self._complete_value(self.state.rocket_agent, message)

    def _complete_sophos_tenants(self, message: Completed) -> None:
        self._complete_value(self.state.sophos_tenants, message)

    def _complete_components(self, message: Completed) -> None:
        self._complete_value(self.state.components, message)
        wizard = self.state.modal
        if isinstance(wizard, WizardModal) and wizard.kind == WizardKind.RUN_COMPONENT:
            if message.ok:
                self._filter_wizard_components()
            else:
                wizard.error = message.error

    # Writes -----------------------------------------------------------------

    def _complete_site_setting(self, message: Completed) -> None:
        slot = message.correlation.slot
        _, site_uid, field_name = slot
        edit = self.state.pending_edits.pop(slot, None)
        label = SETTINGS_LABELS.get(field_name, field_name)
        if message.ok:
            site = self._find_site(site_uid)
            if site is not None:
                self._set_status(f"{label} {'enabled' if getattr(site, field_name) else 'disabled'}")
            return
        if edit is not None:
            site = self._find_site(site_uid)
            # a refresh since the toggle already replaced the value
            if site is not None and getattr(site, field_name) == edit.applied:
                LOGGER.debug("Rolling back %s on %s to %s", field_name, site_uid, edit.snapshot)
                self._replace_site(replace(site, **{field_name: edit.snapshot}))
        self._set_error(f"Failed to update {label}: {message.error}")

    def _complete_site_update(self, message: Completed) -> None:
        field_name = message.correlation.context.get("field", "site")
        label = SETTINGS_LABELS.get(field_name, field_name)
        if not message.ok:
            self._set_error(f"Failed to update {label}: {message.error}")
            return
        site = message.value
        # pending toggles keep their optimistic value
        overrides = {
            edit.field: edit.applied
            for edit in self.state.pending_edits.values()
            if edit.site_uid == site.uid
        }
        if overrides:
            site = replace(site, **overrides)
        self._replace_site(site)
        self._set_status(f"{label} updated")

    def _waiting_wizard(self, message: Completed):
        """Return the open wizard whose own write produced ``message``."""
        wizard = self.state.modal
        if isinstance(wizard, WizardModal) and wizard.pending and wizard.awaiting == message.correlation:
            return wizard
        return None

    def _complete_variable_write(self, message: Completed) -> None:
        site_uid = message.correlation.context["site_uid"]
        created = message.correlation.context.get("created", False)
        wizard = self._waiting_wizard(message)
        if not message.ok:
            action = "create" if created else "update"
            self._set_error(f"Failed to {action} variable: {message.error}")
            if wizard is not None:
                wizard.pending = False
                wizard.error = message.error
            return
        variable = message.value
        site = self._find_site(site_uid)
        if site is not None:
            variables = list(site.variables or ())
            for index, item in enumerate(variables):
                if item.name == variable.name:
                    variables[index] = variable
                    break
            else:
                variables.append(variable)
            self._replace_site(replace(site, variables=tuple(variables)))
        self._set_status(f"Variable {variable.name} {'created' if created else 'updated'}")
        if wizard is not None:
            wizard.pending = False
            wizard.result = f"Created variable {variable.name}"

    def _complete_device_write(self, message: Completed) -> None:
        label = message.correlation.context.get("label", "device")
        if not message.ok:
            self._set_error(f"Failed to update {label}: {message.error}")
            return
        self._replace_device(message.value)
        self._set_status(f"Updated {label} of {message.value.hostname}")

    def _complete_move_device(self, message: Completed) -> None:
        if not message.ok:
            self._set_error(f"Failed to move device: {message.error}")
            return
        device = message.value
        self._replace_device(device)
        site = self.state.site
        if site is not None and device.site_uid != site.uid:
            index = self.state.devices.index_where(lambda item: item.uid == device.uid)
            if index is not None:
                self.state.devices.remove(index)
        self._set_status(f"Moved {device.hostname} to {device.site_name}")

    def _complete_quick_job(self, message: Completed) -> None:
        wizard = self._waiting_wizard(message)
        if not message.ok:
            self._set_error(f"Failed to run component: {message.error}")
            if wizard is not None:
                wizard.pending = False
                wizard.error = message.error
            return
        job = message.value
        self._set_status(f"Job {job.name}: {job.status}")
        if wizard is not None:
            wizard.pending = False
            wizard.result = f"Job {job.name} started ({job.status})"

    def _complete_scan(self, message: Completed) -> None:
        hostname = message.correlation.context.get("hostname", "device")
        if message.ok:
            self._set_status(f"Scan requested for {hostname}")
        else:
            self._set_error(f"Failed to start scan: {message.error}")

    def _complete_web_remote(self, message: Completed) -> None:
        hostname = message.correlation.context.get("hostname", "device")
        if not message.ok:
            self._set_error(f"Failed to open web remote: {message.error}")
        elif message.value:
            self._set_status(f"Opened web remote for {hostname}")
        else:
            self._set_error(f"No browser available to open web remote for {hostname}")
