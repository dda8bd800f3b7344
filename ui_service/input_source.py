"""Threads that feed keys, ticks and resizes into the event channel."""

from __future__ import annotations

import os
import sys
import threading
import time
from typing import Callable, List, Optional, Tuple

from dashboard.messages import EventChannel, KeyPress, Resize, Tick

# seconds to wait for the rest of an escape sequence
ESCAPE_WAIT = 0.05


class KeyReader:
    """Read raw keys from the terminal and post them as ``KeyPress``."""

    def __init__(self, channel: EventChannel) -> None:
        self._channel = channel
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="ui-key-reader",
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._thread.join(timeout=1.0)

    def _post(self, key: Optional[str]) -> None:
        if key:
            self._channel.post(KeyPress(code=key, at=time.monotonic()))

    def _run(self) -> None:
        if os.name == "nt":
            self._run_windows()
        else:
            self._run_posix()

    def _run_windows(self) -> None:
        import msvcrt

        while not self._stop_event.is_set():
            if not msvcrt.kbhit():
                time.sleep(0.05)
                continue
            self._post(read_key_windows())

    def _run_posix(self) -> None:
        import select
        import termios
        import tty

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        tty.setraw(fd)
        pushback: List[str] = []

        def ready(timeout: float = ESCAPE_WAIT) -> bool:
            readable, _, _ = select.select([sys.stdin], [], [], timeout)
            return bool(readable)

        def read(count: int) -> str:
            if pushback:
                return pushback.pop() + (sys.stdin.read(count - 1) if count > 1 else "")
            return sys.stdin.read(count)

        try:
            while not self._stop_event.is_set():
                if not pushback and not ready(0.1):
                    continue
                self._post(read_key_posix(read, ready, pushback.append))
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


_WINDOWS_SPECIAL = {
    "H": "up",
    "P": "down",
    "K": "left",
    "M": "right",
    "I": "pgup",
    "Q": "pgdn",
}

_POSIX_ARROWS = {"[A": "up", "[B": "down", "[C": "right", "[D": "left"}

_CONTROL_KEYS = {
    "\x03": "ctrl+c",
    "\x10": "ctrl+p",
    "\t": "tab",
    "\x1b": "esc",
}


def read_key_windows() -> Optional[str]:
    import msvcrt

    ch = msvcrt.getwch()
    if ch in ("\x00", "\xe0"):
        return _WINDOWS_SPECIAL.get(msvcrt.getwch())
    if ch == "\r":
        return "enter"
    if ch == "\x08":
        return "backspace"
    return _CONTROL_KEYS.get(ch, ch)


def read_key_posix(
    read: Callable[[int], str],
    ready: Optional[Callable[[], bool]] = None,
    unread: Optional[Callable[[str], None]] = None,
) -> Optional[str]:
    """Map one key (possibly an escape sequence) read through ``read``.

    ``ready`` reports whether more input is waiting; a lone Esc is returned
    without reading further when it says no. A byte after Esc that does not
    start a sequence is handed back through ``unread``.
    """
    ch = read(1)
    if not ch:
        return None
    if ch == "\x1b":
        if ready is not None and not ready():
            return "esc"
        lead = read(1)
        if lead not in ("[", "O"):
            if lead and unread is not None:
                unread(lead)
            return "esc"
        nxt = lead + read(1)
        if nxt in ("OA", "OB", "OC", "OD"):
            nxt = "[" + nxt[1]
        if nxt in _POSIX_ARROWS:
            return _POSIX_ARROWS[nxt]
        if nxt == "[5":
            read(1)
            return "pgup"
        if nxt == "[6":
            read(1)
            return "pgdn"
        return "esc"
    if ch in ("\r", "\n"):
        return "enter"
    if ch in ("\x7f", "\x08"):
        return "backspace"
    return _CONTROL_KEYS.get(ch, ch)


class Ticker:
    """Post a ``Tick`` every ``interval_ms`` and a ``Resize`` when the size changes."""

    def __init__(
        self,
        channel: EventChannel,
        interval_ms: int = 250,
        size: Optional[Callable[[], Tuple[int, int]]] = None,
    ) -> None:
        self._channel = channel
        self._interval = interval_ms / 1000.0
        self._size = size
        self._last_size: Optional[Tuple[int, int]] = None
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="ui-ticker")

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._thread.join(timeout=1.0)

    def poll(self) -> None:
        """Post one tick, preceded by a resize if the console size changed."""
        if self._size is not None:
            size = self._size()
            if size != self._last_size:
                self._last_size = size
                self._channel.post(Resize(width=size[0], height=size[1]))
        self._channel.post(Tick(now=time.monotonic()))

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.poll()
