"""
In-process publish/subscribe used to fan out decoder, orchestrator and
monitor events to observers such as console progress displays, alerting and
the realtime metrics log.

Each decoder, orchestrator and monitor instance owns its own EventBus, so
there is no global listener state shared between runs.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

__all__ = ["ALL_EVENTS", "BusEvent", "EventBus", "EventCallback"]

ALL_EVENTS = "*"


@dataclass(frozen=True)
class BusEvent:
    """
    A single published event.

    :param kind: Event kind, for example ``"valid"`` or ``"first-token"``
    :param payload: Event payload, usually one of the modelprobe schemas
    :param timestamp: Unix timestamp of publication
    """

    kind: str
    payload: Any = None
    timestamp: float = field(default_factory=time.time)


EventCallback = Callable[[BusEvent], Any]


class EventBus:
    """
    Explicit observer registry keyed by event kind.

    Callbacks subscribed to ``ALL_EVENTS`` receive every event. A failing
    callback is logged and does not prevent delivery to the remaining ones.

    Example:
    ::
        bus = EventBus()
        unsubscribe = bus.subscribe("valid", lambda event: print(event.payload))
        bus.emit("valid", {"model": "gpt-4"})
        unsubscribe()
    """

    def __init__(self):
        self._subscribers: dict[str, list[EventCallback]] = {}

    def subscribe(
        self, kind: str | None, callback: EventCallback
    ) -> Callable[[], None]:
        """
        Register a callback for an event kind.

        :param kind: Event kind to listen to, None or ``"*"`` for all events
        :param callback: Callable invoked with each matching BusEvent
        :return: Function that removes this subscription when called
        """
        key = kind or ALL_EVENTS
        self._subscribers.setdefault(key, []).append(callback)

        def _unsubscribe():
            self.unsubscribe(key, callback)

        return _unsubscribe

    def unsubscribe(self, kind: str | None, callback: EventCallback) -> bool:
        """
        Remove a previously registered callback.

        :return: True if the callback was registered and has been removed
        """
        callbacks = self._subscribers.get(kind or ALL_EVENTS, [])
        if callback not in callbacks:
            return False

        callbacks.remove(callback)
        return True

    def subscriber_count(self, kind: str | None = None) -> int:
        if kind is None:
            return sum(len(callbacks) for callbacks in self._subscribers.values())

        return len(self._subscribers.get(kind, []))

    def emit(self, kind: str, payload: Any = None) -> BusEvent:
        """
        Publish an event to the callbacks for its kind and to wildcard ones.

        :param kind: Event kind
        :param payload: Event payload
        :return: The published event
        """
        event = BusEvent(kind=kind, payload=payload)
        callbacks = [
            *self._subscribers.get(kind, []),
            *self._subscribers.get(ALL_EVENTS, []),
        ]

        for callback in callbacks:
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                logger.exception(f"Event subscriber failed for '{kind}' event")

        return event

    def clear(self):
        self._subscribers.clear()
