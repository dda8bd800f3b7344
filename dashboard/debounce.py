"""Search-as-you-type debounce rule."""

from __future__ import annotations

from typing import Optional

DEFAULT_QUIET_MS = 500
DEFAULT_MIN_LENGTH = 3


def should_dispatch(
    buffer: str,
    last_dispatched: Optional[str],
    elapsed_ms: float,
    quiet_ms: int = DEFAULT_QUIET_MS,
    min_length: int = DEFAULT_MIN_LENGTH,
) -> bool:
    """
    Decide whether a tick should trigger a new search.

    Args:
        buffer: Current query text
        last_dispatched: Query sent by the previous dispatch, if any
        elapsed_ms: Milliseconds since the last keystroke
        quiet_ms: Required quiet period
        min_length: Minimum query length

    Returns:
        True when the input has settled, is long enough and differs from
        what was already sent.
    """
    if elapsed_ms < quiet_ms:
        return False
    if len(buffer) < min_length:
        return False
    return buffer != last_dispatched


def elapsed_since(last_keystroke: Optional[float], now: float) -> float:
    """Milliseconds between a keystroke timestamp and ``now`` (0 if never typed)."""
    if last_keystroke is None:
        return 0.0
    return max(0.0, (now - last_keystroke) * 1000.0)
