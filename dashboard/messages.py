"""Messages carried by the event channel."""

from __future__ import annotations

import queue
import time
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, Union

from .slots import RequestCorrelation

__all__ = ["KeyPress", "Resize", "Tick", "Completed", "Message", "EventChannel"]


@dataclass(frozen=True)
class KeyPress:
    code: str
    modifiers: FrozenSet[str] = frozenset()
    at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    now: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class Completed:
    """Outcome of one dispatched operation.

    ``error`` is a human readable message; ``value`` is only meaningful when
    ``error`` is None.
    """

    correlation: RequestCorrelation
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


Message = Union[KeyPress, Resize, Tick, Completed]


class EventChannel:
    """Unbounded multi-producer, single-consumer message queue."""

    def __init__(self) -> None:
        self._queue: queue.Queue[Message] = queue.Queue()

    def post(self, message: Message) -> None:
        self._queue.put_nowait(message)

    def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_nowait(self) -> Optional[Message]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def __len__(self) -> int:
        return self._queue.qsize()
