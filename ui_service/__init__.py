"""Terminal front end: input threads, rich rendering and the event loop."""
