"""Per-slot dispatch ordinals used to drop superseded completions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Tuple

__all__ = ["Slot", "RequestCorrelation", "SlotTracker"]

LOGGER = logging.getLogger(__name__)

Slot = Tuple[Hashable, ...]


@dataclass(frozen=True)
class RequestCorrelation:
    slot: Slot
    ordinal: int
    context: Dict[str, Any] = field(default_factory=dict, compare=False)


class SlotTracker:
    """Hand out monotonically increasing ordinals per slot.

    Only the completion carrying a slot's latest ordinal is current; anything
    older answers a request that has since been superseded.
    """

    def __init__(self) -> None:
        self._ordinals: Dict[Slot, int] = {}

    def issue(self, slot: Slot, **context: Any) -> RequestCorrelation:
        ordinal = self._ordinals.get(slot, 0) + 1
        self._ordinals[slot] = ordinal
        return RequestCorrelation(slot=slot, ordinal=ordinal, context=context)

    def invalidate(self, slot: Slot) -> None:
        if slot in self._ordinals:
            self._ordinals[slot] += 1

    def current(self, slot: Slot) -> int:
        return self._ordinals.get(slot, 0)

    def is_current(self, correlation: RequestCorrelation) -> bool:
        current = self._ordinals.get(correlation.slot, 0)
        if correlation.ordinal != current:
            LOGGER.debug(
                "Dropping stale completion for %s (ordinal %d, current %d)",
                correlation.slot,
                correlation.ordinal,
                current,
            )
            return False
        return True
