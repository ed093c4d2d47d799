from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from app.logging import get_logger

Listener = Callable[[Any], None]

DATA_LOADED = "data-loaded"
DATA_FAILED = "data-failed"


def _split_typename(typename: str) -> tuple[str, str]:
    event_type, _, name = typename.partition(".")
    return event_type.strip(), name.strip()


class EventDispatcher:
    """Named-event publish/subscribe.

    Listeners register as ``"<type>.<name>"``: registering the same type and
    name again replaces the previous listener, and passing ``None`` removes
    it. Listeners without a name are always appended.
    """

    def __init__(self, *event_types: str) -> None:
        if not event_types:
            raise ValueError("EventDispatcher needs at least one event type.")
        self._listeners: dict[str, list[tuple[str, Listener]]] = {}
        for event_type in event_types:
            if not event_type or "." in event_type:
                raise ValueError(f"Invalid event type: '{event_type}'.")
            self._listeners[event_type] = []
        self._lock = threading.Lock()
        self._logger = get_logger("event_dispatcher")

    @property
    def event_types(self) -> tuple[str, ...]:
        return tuple(self._listeners)

    def on(self, typename: str, listener: Listener | None) -> "EventDispatcher":
        event_type, name = _split_typename(typename)
        if event_type not in self._listeners:
            raise ValueError(f"Unknown event type: '{event_type}'.")
        with self._lock:
            current = self._listeners[event_type]
            if name:
                current = [item for item in current if item[0] != name]
            if listener is not None:
                current = [*current, (name, listener)]
            self._listeners[event_type] = current
        return self

    def listeners(self, event_type: str) -> list[Listener]:
        if event_type not in self._listeners:
            raise ValueError(f"Unknown event type: '{event_type}'.")
        with self._lock:
            return [listener for _, listener in self._listeners[event_type]]

    def call(self, event_type: str, payload: Any = None) -> None:
        listeners = self.listeners(event_type)
        self._logger.debug("Dispatching event.", event_type=event_type, listeners=len(listeners))
        for listener in listeners:
            listener(payload)


def create_load_dispatcher() -> EventDispatcher:
    return EventDispatcher(DATA_LOADED, DATA_FAILED)
