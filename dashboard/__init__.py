"""Dashboard orchestration core: event channel, dispatcher and state machine."""

from .debounce import should_dispatch
from .dispatcher import DEFAULT_OPERATIONS, DispatchRequest, TaskDispatcher
from .machine import ALL_BACKENDS, AppStateMachine
from .messages import Completed, EventChannel, KeyPress, Resize, Tick
from .model import AppState, PaginatedList
from .reconcile import IncidentStats, SiteRow, reconcile
from .slots import RequestCorrelation, SlotTracker

__all__ = [
    "ALL_BACKENDS",
    "AppState",
    "AppStateMachine",
    "Completed",
    "DEFAULT_OPERATIONS",
    "DispatchRequest",
    "EventChannel",
    "IncidentStats",
    "KeyPress",
    "PaginatedList",
    "RequestCorrelation",
    "Resize",
    "SiteRow",
    "SlotTracker",
    "TaskDispatcher",
    "Tick",
    "reconcile",
    "should_dispatch",
]
