from __future__ import annotations

import logging
from collections.abc import Callable

from .models import NotificationEvent

logger = logging.getLogger("slackline.events")

FrameHandler = Callable[[str], None]
EventHandler = Callable[[NotificationEvent], None]


class EventBus:
    """Synchronous fan-out of raw frames and classified events.

    Subscribers run inline in emit order; a failing subscriber is logged and
    does not stop the others.
    """

    def __init__(self) -> None:
        self._frame_handlers: list[FrameHandler] = []
        self._event_handlers: list[EventHandler] = []

    def on_raw_frame(self, handler: FrameHandler) -> None:
        self._frame_handlers.append(handler)

    def on_event(self, handler: EventHandler) -> None:
        self._event_handlers.append(handler)

    def off_event(self, handler: EventHandler) -> None:
        if handler in self._event_handlers:
            self._event_handlers.remove(handler)

    def emit_raw_frame(self, payload: str) -> None:
        for handler in list(self._frame_handlers):
            try:
                handler(payload)
            except Exception:
                logger.exception("Raw frame subscriber failed")

    def emit_event(self, event: NotificationEvent) -> None:
        for handler in list(self._event_handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Event subscriber failed for %s event", event.type)
