"""Application state owned by the state machine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar, Union

from api.types import (
    ActivityLog,
    Alert,
    AvAgent,
    Component,
    Device,
    Incident,
    JobOutput,
    JobResult,
    RocketAgent,
    Site,
    SophosEndpoint,
    SophosTenant,
)

from .reconcile import IncidentStats, SiteRow
from .slots import RequestCorrelation, Slot

T = TypeVar("T")


class PaginatedList(Generic[T]):
    """An ordered list with a selection cursor that is always valid.

    ``selected`` is None exactly when the list is empty; otherwise it is an
    index into ``items``.
    """

    def __init__(self, items: Optional[Sequence[T]] = None) -> None:
        self.items: List[T] = []
        self.selected: Optional[int] = None
        self.loading = False
        self.error: Optional[str] = None
        self.page = 0
        self.total_pages = 1
        self.total_count: Optional[int] = None
        if items:
            self.replace(items)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def __repr__(self) -> str:
        return f"PaginatedList(len={len(self.items)}, selected={self.selected}, loading={self.loading})"

    @property
    def current(self) -> Optional[T]:
        if self.selected is None:
            return None
        return self.items[self.selected]

    def start_loading(self) -> None:
        self.loading = True
        self.error = None

    def fail(self, error: str) -> None:
        self.loading = False
        self.error = error

    def replace(self, items: Sequence[T]) -> None:
        """Replace the contents wholesale; the cursor goes back to the top."""
        self.items = list(items)
        self.selected = 0 if self.items else None
        self.loading = False
        self.error = None

    def refresh(self, items: Sequence[T]) -> None:
        """Replace the contents, keeping the cursor where it was when possible."""
        self.items = list(items)
        self.loading = False
        self.error = None
        self.clamp()

    def clear(self) -> None:
        self.replace([])
        self.page = 0
        self.total_pages = 1
        self.total_count = None

    def clamp(self) -> None:
        if not self.items:
            self.selected = None
        elif self.selected is None:
            self.selected = 0
        else:
            self.selected = max(0, min(self.selected, len(self.items) - 1))

    def next(self) -> None:
        if self.items:
            self.selected = 0 if self.selected is None else (self.selected + 1) % len(self.items)

    def prev(self) -> None:
        if self.items:
            self.selected = 0 if self.selected is None else (self.selected - 1) % len(self.items)

    def move(self, delta: int) -> None:
        """Move without wrapping."""
        if self.items:
            start = self.selected or 0
            self.selected = max(0, min(start + delta, len(self.items) - 1))

    def set_item(self, index: int, item: T) -> None:
        if 0 <= index < len(self.items):
            self.items[index] = item

    def remove(self, index: int) -> None:
        if 0 <= index < len(self.items):
            del self.items[index]
            self.clamp()

    def index_where(self, predicate) -> Optional[int]:
        for index, item in enumerate(self.items):
            if predicate(item):
                return index
        return None


@dataclass
class Loadable(Generic[T]):
    """A single fetched value with its own loading flag and error."""

    value: Optional[T] = None
    loading: bool = False
    error: Optional[str] = None

    def start_loading(self) -> None:
        self.loading = True
        self.error = None

    def resolve(self, value: Optional[T]) -> None:
        self.value = value
        self.loading = False
        self.error = None

    def fail(self, error: str) -> None:
        self.loading = False
        self.error = error

    def reset(self) -> None:
        self.value = None
        self.loading = False
        self.error = None


# Views --------------------------------------------------------------------

SITE_TABS = ("Devices", "Alerts", "Variables", "Settings")
DEVICE_TABS = ("Open Alerts", "Activities")

SETTINGS_ROWS = ("name", "description", "notes", "on_demand", "splashtop_auto_install")
SETTINGS_LABELS = {
    "name": "Name",
    "description": "Description",
    "notes": "Notes",
    "on_demand": "On Demand",
    "splashtop_auto_install": "Splashtop Auto Install",
}
TOGGLE_SETTINGS = ("on_demand", "splashtop_auto_install")


@dataclass(frozen=True)
class ListView:
    pass


@dataclass(frozen=True)
class SiteDetailView:
    site_uid: str
    parent: "View" = field(default_factory=ListView)


@dataclass(frozen=True)
class DeviceDetailView:
    device_uid: str
    parent: "View" = field(default_factory=ListView)


@dataclass(frozen=True)
class ActivityDetailView:
    log: ActivityLog
    parent: "View" = field(default_factory=ListView)


View = Union[ListView, SiteDetailView, DeviceDetailView, ActivityDetailView]


# Modals -------------------------------------------------------------------

class FieldKind(enum.Enum):
    SITE_NAME = "name"
    SITE_DESCRIPTION = "description"
    SITE_NOTES = "notes"
    VARIABLE_VALUE = "variable"
    UDF = "udf"
    WARRANTY = "warranty"


class WizardKind(enum.Enum):
    CREATE_VARIABLE = "create-variable"
    RUN_COMPONENT = "run-component"


class PickerKind(enum.Enum):
    DEVICE_SEARCH = "device-search"
    SITE_MOVE = "site-move"
    QUICK_ACTIONS = "quick-actions"


SEARCH_PICKERS = (PickerKind.DEVICE_SEARCH, PickerKind.SITE_MOVE)

QUICK_ACTIONS = (
    "Run Component",
    "Run AV Scan",
    "Open Web Remote",
    "Move Device to Site",
    "Update Warranty",
    "Clear Warranty",
    "Reload Data",
)


@dataclass
class TextInputModal:
    kind: FieldKind
    buffer: str
    target: Any
    original: str = ""
    udf_index: int = 0
    error: Optional[str] = None


@dataclass
class WizardModal:
    kind: WizardKind
    target: Any
    steps: List[str]
    step: int = 0
    collected: Dict[str, str] = field(default_factory=dict)
    buffer: str = ""
    options: PaginatedList = field(default_factory=PaginatedList)
    component: Optional[Component] = None
    pending: bool = False
    awaiting: Optional[RequestCorrelation] = None
    result: Optional[str] = None
    error: Optional[str] = None

    @property
    def current_step(self) -> str:
        return self.steps[min(self.step, len(self.steps) - 1)]

    @property
    def on_result(self) -> bool:
        return self.current_step == "result"


@dataclass
class ListPickerModal:
    kind: PickerKind
    query: str = ""
    results: PaginatedList = field(default_factory=PaginatedList)
    last_dispatched: Optional[str] = None
    last_keystroke: Optional[float] = None


Modal = Union[TextInputModal, WizardModal, ListPickerModal]


# Pending writes -----------------------------------------------------------

@dataclass
class OptimisticEdit:
    slot: Slot
    site_uid: str
    field: str
    snapshot: Any
    applied: Any


# Whole state --------------------------------------------------------------

@dataclass
class AppState:
    view: View = field(default_factory=ListView)
    modal: Optional[Modal] = None

    sites: PaginatedList[Site] = field(default_factory=PaginatedList)
    rows: List[SiteRow] = field(default_factory=list)
    incidents: Loadable[List[Incident]] = field(default_factory=Loadable)
    incident_stats: Dict[str, IncidentStats] = field(default_factory=dict)
    sophos_tenants: Loadable[List[SophosTenant]] = field(default_factory=Loadable)
    components: Loadable[List[Component]] = field(default_factory=Loadable)

    # Site detail panes
    site: Optional[Site] = None
    site_tab: int = 0
    devices: PaginatedList[Device] = field(default_factory=PaginatedList)
    site_alerts: PaginatedList[Alert] = field(default_factory=PaginatedList)
    variable_rows: PaginatedList = field(default_factory=PaginatedList)
    variables_loading: bool = False
    variables_error: Optional[str] = None
    settings_cursor: int = 0

    # Device detail panes
    device: Optional[Device] = None
    device_tab: int = 0
    device_alerts: PaginatedList[Alert] = field(default_factory=PaginatedList)
    activities: PaginatedList[ActivityLog] = field(default_factory=PaginatedList)
    av_agent: Loadable[AvAgent] = field(default_factory=Loadable)
    sophos_endpoint: Loadable[SophosEndpoint] = field(default_factory=Loadable)
    rocket_agent: Loadable[RocketAgent] = field(default_factory=Loadable)

    # Activity detail panes
    job_result: Loadable[JobResult] = field(default_factory=Loadable)
    job_rows: PaginatedList = field(default_factory=PaginatedList)
    job_output: Loadable[List[JobOutput]] = field(default_factory=Loadable)
    job_output_label: str = ""

    pending_edits: Dict[Slot, OptimisticEdit] = field(default_factory=dict)
    status: Optional[str] = None
    status_error: Optional[str] = None
    width: int = 80
    height: int = 24


def build_job_rows(result: JobResult) -> List[tuple]:
    """Selectable rows of a job result: a header per component and its output links."""
    rows = []
    for index, component in enumerate(result.component_results):
        name = component.component_name or f"Component {index + 1}"
        rows.append(("component", index, name))
        if component.has_std_out:
            rows.append(("stdout", index, name))
        if component.has_std_err:
            rows.append(("stderr", index, name))
    return rows
