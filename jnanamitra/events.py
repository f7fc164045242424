"""Event bus carrying session signals to the presentation layer.

Usage:
    bus = EventBus()

    def on_session_changed(event):
        render(event.data["messages"])

    bus.subscribe(SESSION_CHANGED, on_session_changed)
    await bus.publish(SESSION_CHANGED, {"messages": store.snapshot()})
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)

SESSION_CHANGED = "session.changed"
REQUEST_STATE_CHANGED = "request.state_changed"
SPEECH_RECORDING_CHANGED = "speech.recording_changed"


@dataclass
class Event:
    """Event data container."""

    name: str
    data: dict[str, Any]
    source: str | None = None


class EventBus:
    """Publish/subscribe hub between the controller and its observers.

    Handlers may be plain callables or coroutine functions. A failing handler
    is logged and never interrupts the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[[Event], Any]]] = {}

    def subscribe(self, event_name: str, handler: Callable[[Event], Any]) -> None:
        """Subscribe ``handler`` to ``event_name``."""
        self._subscribers.setdefault(event_name, []).append(handler)
        LOGGER.debug(
            "events.subscribed",
            extra={"event": "events.subscribed", "event_name": event_name},
        )

    def unsubscribe(self, event_name: str, handler: Callable[[Event], Any]) -> None:
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._subscribers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def publish(
        self, event_name: str, data: dict[str, Any], source: str | None = None
    ) -> None:
        """Publish an event to all subscribers in subscription order."""
        event = Event(name=event_name, data=data, source=source)
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    handler(event)
            except Exception:  # noqa: BLE001 - observers must not break the core.
                LOGGER.exception(
                    "events.handler.failed",
                    extra={"event": "events.handler.failed", "event_name": event_name},
                )

    def clear(self, event_name: str | None = None) -> None:
        """Clear subscribers for one event, or all of them."""
        if event_name:
            self._subscribers.pop(event_name, None)
        else:
            self._subscribers.clear()
