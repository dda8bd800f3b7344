"""Terminal UI loop for the RMM dashboard."""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.live import Live

from api import Backends
from common.config import Config
from dashboard.dispatcher import TaskDispatcher
from dashboard.machine import AppStateMachine
from dashboard.messages import EventChannel, KeyPress

from .input_source import KeyReader, Ticker
from .render import render_ui

LOGGER = logging.getLogger(__name__)

_QUIT_KEYS = {"ctrl+c"}


def enabled_backends(backends: Backends) -> set[str]:
    enabled = {"rmm"}
    if backends.datto_av is not None:
        enabled.add("datto_av")
    if backends.sophos is not None:
        enabled.add("sophos")
    if backends.rocket_cyber is not None:
        enabled.add("rocket_cyber")
    return enabled


class DashboardApp:
    """Own the event channel and drive the state machine from it.

    This is the only consumer of the channel: every message is applied to
    completion, its dispatch requests are handed to the dispatcher and a new
    frame is drawn before the next message is taken.
    """

    def __init__(
        self,
        config: Config,
        backends: Backends,
        console: Optional[Console] = None,
        channel: Optional[EventChannel] = None,
        dispatcher: Optional[TaskDispatcher] = None,
    ) -> None:
        self.config = config
        self.console = console or Console()
        self.channel = channel or EventChannel()
        self.dispatcher = dispatcher or TaskDispatcher(backends, self.channel)
        self.machine = AppStateMachine(
            page_size=config.page_size,
            debounce_ms=config.debounce_ms,
            min_search_length=config.min_search_length,
            enabled=enabled_backends(backends),
        )

    def step(self, timeout: Optional[float] = None) -> bool:
        """Process one message. Returns False once the user asked to quit."""
        message = self.channel.get(timeout=timeout)
        if message is None:
            return not self.machine.should_quit
        if isinstance(message, KeyPress) and message.code in _QUIT_KEYS:
            self.machine.should_quit = True
            return False
        for request in self.machine.apply(message):
            self.dispatcher.dispatch(request)
        return not self.machine.should_quit

    def run(self) -> int:
        key_reader = KeyReader(self.channel)
        ticker = Ticker(
            self.channel,
            interval_ms=self.config.tick_rate_ms,
            size=lambda: (self.console.size.width, self.console.size.height),
        )
        LOGGER.info("Dashboard starting")
        try:
            self.console.clear()
            self.console.show_cursor(False)
            for request in self.machine.start():
                self.dispatcher.dispatch(request)
            key_reader.start()
            ticker.start()
            with Live(
                render_ui(self.machine.snapshot()),
                console=self.console,
                screen=True,
                auto_refresh=False,
            ) as live:
                while self.step(timeout=1.0):
                    live.update(render_ui(self.machine.snapshot()), refresh=True)
        except KeyboardInterrupt:
            pass
        finally:
            ticker.stop()
            key_reader.stop()
            self.console.show_cursor(True)
            self.console.clear()
        LOGGER.info("Dashboard stopped")
        return 0


def main(config: Config, backends: Backends) -> int:
    return DashboardApp(config, backends).run()
