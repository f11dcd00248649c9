from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable

from clubify_checkout.observability import incr_metric, log_event


WILDCARD = "*"


@dataclass
class Event:
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    occurred_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    stopped: bool = False

    def stop_propagation(self) -> None:
        self.stopped = True


Listener = Callable[[Event], Any]


class EventDispatcher:
    """Synchronous in-process dispatcher. ``"*"`` listeners see every event."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._listeners: dict[str, list[tuple[int, int, Listener]]] = {}
        self._sequence = 0

    def listen(self, name: str, listener: Listener, priority: int = 0) -> None:
        with self._lock:
            self._sequence += 1
            bucket = self._listeners.setdefault(name, [])
            bucket.append((priority, self._sequence, listener))
            bucket.sort(key=lambda item: (-item[0], item[1]))

    def remove_listener(self, name: str, listener: Listener) -> None:
        with self._lock:
            bucket = self._listeners.get(name, [])
            self._listeners[name] = [item for item in bucket if item[2] is not listener]

    def has_listeners(self, name: str) -> bool:
        with self._lock:
            return bool(self._listeners.get(name) or self._listeners.get(WILDCARD))

    def _listeners_for(self, name: str) -> list[Listener]:
        with self._lock:
            specific = list(self._listeners.get(name, []))
            wildcard = list(self._listeners.get(WILDCARD, [])) if name != WILDCARD else []
        return [item[2] for item in specific] + [item[2] for item in wildcard]

    def emit(self, name: str, data: dict[str, Any] | None = None) -> Event:
        event = Event(name=name, data=dict(data or {}))
        for listener in self._listeners_for(name):
            if event.stopped:
                break
            try:
                listener(event)
            except Exception as exc:
                incr_metric("events.listener_failed", event_name=name)
                log_event("event_listener_failed", level=logging.ERROR, event_name=name, error=str(exc))
                raise
        incr_metric("events.emitted", event_name=name)
        return event
