"""Key handling for the text input, wizard and picker overlays."""

from __future__ import annotations

import datetime
import logging
import re
from typing import List, Optional

from api.types import UDF_COUNT, Component, Device

from .debounce import elapsed_since, should_dispatch
from .messages import KeyPress
from .model import (
    QUICK_ACTIONS,
    SEARCH_PICKERS,
    FieldKind,
    ListPickerModal,
    PickerKind,
    TextInputModal,
    WizardKind,
    WizardModal,
)

LOGGER = logging.getLogger(__name__)

CREATE_VARIABLE_ROW = "+ Create new"

CREATE_VARIABLE_STEPS = ["name", "value", "masked", "result"]

_WARRANTY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_SEARCH_OPERATIONS = {
    PickerKind.DEVICE_SEARCH: "search-devices",
    PickerKind.SITE_MOVE: "search-sites",
}


def _printable(code: str) -> bool:
    return len(code) == 1 and code.isprintable()


def validate_warranty(value: str) -> Optional[str]:
    """Return an error message for a bad warranty date, None when acceptable."""
    if not value:
        return None
    if not _WARRANTY_RE.match(value):
        return "Use YYYY-MM-DD, or leave empty to clear"
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        return f"{value} is not a valid date"
    return None


def filter_components(components: List[Component], query: str) -> List[Component]:
    query = query.lower()
    return [component for component in components if query in component.name.lower()]


class ModalsMixin:
    """Overlay behaviour of ``AppStateMachine``."""

    # Opening and closing ----------------------------------------------------

    def _close_modal(self) -> None:
        modal = self.state.modal
        if isinstance(modal, ListPickerModal) and modal.kind in SEARCH_PICKERS:
            # late results for this picker must not land in the next one
            self.tracker.invalidate(("search", modal.kind.value))
        self.state.modal = None

    def _open_picker(self, kind: PickerKind) -> bool:
        picker = ListPickerModal(kind=kind)
        if kind == PickerKind.QUICK_ACTIONS:
            picker.results.replace(list(QUICK_ACTIONS))
        return self._open_modal(picker)

    def _open_wizard(self, kind: WizardKind, target) -> bool:
        if kind == WizardKind.CREATE_VARIABLE:
            wizard = WizardModal(kind=kind, target=target, steps=list(CREATE_VARIABLE_STEPS))
            return self._open_modal(wizard)
        wizard = WizardModal(kind=kind, target=target, steps=["component"])
        if not self._open_modal(wizard):
            return False
        components = self.state.components
        if components.value is None and not components.loading:
            components.start_loading()
            self._dispatch("components", ("components",))
        self._filter_wizard_components()
        return True

    def _open_warranty_input(self) -> None:
        device = self.state.device
        value = (device.warranty_date or "")[:10]
        self._open_modal(TextInputModal(kind=FieldKind.WARRANTY, buffer=value, target=device.uid, original=value))

    def _filter_wizard_components(self) -> None:
        wizard = self.state.modal
        if not isinstance(wizard, WizardModal) or wizard.kind != WizardKind.RUN_COMPONENT:
            return
        if wizard.current_step != "component":
            return
        components = self.state.components.value or []
        wizard.options.replace(filter_components(components, wizard.buffer))

    # Dispatching by modal kind ----------------------------------------------

    def _on_modal_key(self, key: KeyPress) -> None:
        modal = self.state.modal
        if isinstance(modal, TextInputModal):
            self._on_text_input_key(modal, key.code)
        elif isinstance(modal, WizardModal):
            self._on_wizard_key(modal, key.code)
        elif isinstance(modal, ListPickerModal):
            self._on_picker_key(modal, key)

    # Text input -------------------------------------------------------------

    def _on_text_input_key(self, modal: TextInputModal, code: str) -> None:
        if code == "esc":
            self._close_modal()
        elif code == "enter":
            self._submit_text_input(modal)
        elif code == "backspace":
            modal.buffer = modal.buffer[:-1]
            modal.error = None
        elif code in ("left", "right") and modal.kind == FieldKind.UDF:
            step = -1 if code == "left" else 1
            modal.udf_index = (modal.udf_index + step) % UDF_COUNT
            device = self.state.device
            value = device.udf[modal.udf_index] if device is not None else None
            modal.buffer = value or ""
            modal.original = modal.buffer
            modal.error = None
        elif _printable(code):
            modal.buffer += code
            modal.error = None

    def _submit_text_input(self, modal: TextInputModal) -> None:
        kind = modal.kind
        value = modal.buffer.strip()
        if kind in (FieldKind.SITE_NAME, FieldKind.SITE_DESCRIPTION, FieldKind.SITE_NOTES):
            site = self._find_site(modal.target)
            if site is None:
                self._close_modal()
                return
            if kind == FieldKind.SITE_NAME and not value:
                modal.error = "Name cannot be empty"
                return
            self._close_modal()
            field_name = kind.value
            self._set_status(f"Saving {field_name}...")
            self._dispatch(
                "update-site",
                ("site-update", site.uid),
                {"site_uid": site.uid, "field": field_name},
                site=site,
                changes={field_name: value or None},
            )
        elif kind == FieldKind.VARIABLE_VALUE:
            site_uid, variable = modal.target
            self._close_modal()
            self._set_status(f"Saving variable {variable.name}...")
            self._dispatch(
                "update-variable",
                ("variable-write", site_uid, variable.name),
                {"site_uid": site_uid},
                site_uid=site_uid,
                variable_id=variable.id,
                name=variable.name,
                value=modal.buffer,
            )
        elif kind == FieldKind.UDF:
            device = self.state.device
            self._close_modal()
            if device is None or device.uid != modal.target:
                return
            self._set_status(f"Saving UDF {modal.udf_index + 1}...")
            self._dispatch(
                "set-udf",
                ("device-write", device.uid, "udf"),
                {"device_uid": device.uid, "label": f"UDF {modal.udf_index + 1}"},
                device=device,
                index=modal.udf_index,
                value=value or None,
            )
        elif kind == FieldKind.WARRANTY:
            error = validate_warranty(value)
            if error:
                modal.error = error
                return
            self._close_modal()
            self._write_warranty(value or None)

    def _write_warranty(self, warranty_date: Optional[str]) -> None:
        device = self.state.device
        if device is None:
            return
        self._set_status("Saving warranty..." if warranty_date else "Clearing warranty...")
        self._dispatch(
            "set-warranty",
            ("device-write", device.uid, "warranty"),
            {"device_uid": device.uid, "label": "warranty"},
            device=device,
            warranty_date=warranty_date,
        )

    # Wizards ----------------------------------------------------------------

    def _on_wizard_key(self, wizard: WizardModal, code: str) -> None:
        if wizard.on_result:
            if code in ("enter", "esc"):
                self._close_modal()
            return
        step = wizard.current_step
        if code == "esc":
            if wizard.step == 0:
                self._close_modal()
                return
            wizard.step -= 1
            wizard.error = None
            wizard.buffer = wizard.collected.get(wizard.current_step, "")
            self._filter_wizard_components()
        elif code == "enter":
            self._submit_wizard_step(wizard)
        elif step == "component" and code in ("up", "down"):
            wizard.options.move(-1 if code == "up" else 1)
        elif step == "masked":
            if code.lower() in ("y", "n"):
                wizard.buffer = code.lower()
        elif step == "review":
            return
        elif code == "backspace":
            wizard.buffer = wizard.buffer[:-1]
            self._filter_wizard_components()
        elif _printable(code):
            wizard.buffer += code
            self._filter_wizard_components()

    def _advance(self, wizard: WizardModal, value: str) -> None:
        wizard.collected[wizard.current_step] = value
        wizard.step += 1
        wizard.error = None
        wizard.buffer = wizard.collected.get(wizard.current_step, "")

    def _submit_wizard_step(self, wizard: WizardModal) -> None:
        step = wizard.current_step
        if wizard.kind == WizardKind.CREATE_VARIABLE:
            if step == "name":
                name = wizard.buffer.strip()
                if not name:
                    wizard.error = "Name cannot be empty"
                    return
                self._advance(wizard, name)
            elif step == "value":
                self._advance(wizard, wizard.buffer)
                if not wizard.buffer:
                    wizard.buffer = "n"
            elif step == "masked":
                masked = wizard.buffer == "y"
                self._advance(wizard, "y" if masked else "n")
                wizard.pending = True
                site_uid = wizard.target
                name = wizard.collected["name"]
                wizard.awaiting = self._dispatch(
                    "create-variable",
                    ("variable-write", site_uid, name),
                    {"site_uid": site_uid, "created": True},
                    site_uid=site_uid,
                    name=name,
                    value=wizard.collected["value"],
                    masked=masked,
                )
            return

        if step == "component":
            component = wizard.options.current
            if component is None:
                return
            wizard.component = component
            wizard.collected["component"] = wizard.buffer
            variable_steps = [f"var:{variable.name}" for variable in component.variables]
            wizard.steps = ["component"] + variable_steps + ["review", "result"]
            for variable in component.variables:
                wizard.collected.setdefault(f"var:{variable.name}", variable.default_value)
            wizard.step = 1
            wizard.error = None
            wizard.buffer = wizard.collected.get(wizard.current_step, "")
        elif step.startswith("var:"):
            self._advance(wizard, wizard.buffer)
        elif step == "review":
            device = self.state.device
            if device is None or wizard.component is None:
                wizard.error = "No device selected"
                return
            variables = {
                variable.name: wizard.collected.get(f"var:{variable.name}", "")
                for variable in wizard.component.variables
            }
            self._advance(wizard, "")
            wizard.pending = True
            wizard.awaiting = self._dispatch(
                "run-quick-job",
                ("quick-job",),
                {"device_uid": device.uid},
                device_uid=device.uid,
                component=wizard.component,
                variables=variables,
            )

    # Pickers ----------------------------------------------------------------

    def _on_picker_key(self, picker: ListPickerModal, key: KeyPress) -> None:
        code = key.code
        if code == "esc":
            self._close_modal()
        elif code == "enter":
            self._choose(picker)
        elif code in ("up", "down"):
            picker.results.move(-1 if code == "up" else 1)
        elif code == "backspace" or _printable(code):
            if code == "backspace":
                picker.query = picker.query[:-1]
            else:
                picker.query += code
            picker.last_keystroke = key.at
            if picker.kind == PickerKind.QUICK_ACTIONS:
                query = picker.query.lower()
                picker.results.replace([action for action in QUICK_ACTIONS if query in action.lower()])

    def _debounce_search(self, now: float) -> None:
        picker = self.state.modal
        if not isinstance(picker, ListPickerModal) or picker.kind not in SEARCH_PICKERS:
            return
        if picker.last_keystroke is None:
            return
        elapsed = elapsed_since(picker.last_keystroke, now)
        if not should_dispatch(
            picker.query,
            picker.last_dispatched,
            elapsed,
            quiet_ms=self.debounce_ms,
            min_length=self.min_search_length,
        ):
            return
        picker.last_dispatched = picker.query
        picker.results.start_loading()
        self._dispatch(
            _SEARCH_OPERATIONS[picker.kind],
            ("search", picker.kind.value),
            {"query": picker.query},
            query=picker.query,
        )

    def _choose(self, picker: ListPickerModal) -> None:
        choice = picker.results.current
        if choice is None:
            return
        self._close_modal()
        if picker.kind == PickerKind.DEVICE_SEARCH:
            self._open_device(choice, self.state.view)
        elif picker.kind == PickerKind.SITE_MOVE:
            self._move_device(choice)
        else:
            self._run_quick_action(choice)

    def _move_device(self, site) -> None:
        device = self.state.device
        if device is None:
            return
        self._set_status(f"Moving {device.hostname} to {site.name}...")
        self._dispatch(
            "move-device",
            ("move-device",),
            {"device_uid": device.uid},
            device=device,
            site=site,
        )

    def _run_quick_action(self, action: str) -> None:
        device: Optional[Device] = self.state.device
        if device is None:
            return
        if action == "Run Component":
            self._open_wizard(WizardKind.RUN_COMPONENT, device.uid)
        elif action == "Run AV Scan":
            self._start_scan(device)
        elif action == "Open Web Remote":
            self._open_web_remote(device)
        elif action == "Move Device to Site":
            self._open_picker(PickerKind.SITE_MOVE)
        elif action == "Update Warranty":
            self._open_warranty_input()
        elif action == "Clear Warranty":
            self._write_warranty(None)
        elif action == "Reload Data":
            self._load_device_panes(device)

    def _open_web_remote(self, device: Device) -> None:
        if not device.web_remote_url:
            self._set_error(f"No web remote URL for {device.hostname}")
            return
        self._set_status(f"Opening web remote for {device.hostname}...")
        self._dispatch(
            "open-web-remote",
            ("web-remote",),
            {"hostname": device.hostname},
            url=device.web_remote_url,
        )

    def _start_scan(self, device: Device) -> None:
        state = self.state
        endpoint = state.sophos_endpoint.value
        agent = state.av_agent.value
        if "sophos" in device.antivirus_product.lower():
            if endpoint is None:
                self._set_error(f"No Sophos endpoint found for {device.hostname}")
                return
            self._set_status(f"Requesting Sophos scan of {device.hostname}...")
            self._dispatch(
                "sophos-scan",
                ("scan",),
                {"hostname": device.hostname},
                tenant_id=endpoint.tenant_id,
                data_region=endpoint.data_region,
                endpoint_id=endpoint.id,
            )
        elif agent is not None:
            self._set_status(f"Requesting Datto AV scan of {device.hostname}...")
            self._dispatch("datto-av-scan", ("scan",), {"hostname": device.hostname}, agent_id=agent.id)
        else:
            self._set_error(f"No AV agent found for {device.hostname}")
