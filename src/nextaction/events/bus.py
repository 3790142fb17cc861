"""
Process-wide notification channel.

One EventBus is constructed by the entry point and handed to every component
that emits or consumes events. There is no module-level instance.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List

log = logging.getLogger(__name__)

Listener = Callable[["DatabaseEvent"], None]


class DatabaseEvent(str, Enum):
    # A local mutation, e.g. a task toggled through the API
    TASKS_CHANGED = "tasks-changed"
    # Reconciliation changed rows after reading a note
    TASKS_EXTERNAL_CHANGE = "tasks-external-change"
    # A consumer should bring the task view to the front
    VIEW_REQUESTED = "view-requested"


class EventBus:
    def __init__(self) -> None:
        self._listeners: Dict[DatabaseEvent, List[Listener]] = {}

    def on(self, event: DatabaseEvent, listener: Listener) -> Callable[[], None]:
        """Subscribe. Returns a callable that unsubscribes the listener."""
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: DatabaseEvent, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: DatabaseEvent) -> None:
        log.debug("Event: %s", event.value)
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(event)
            except Exception:
                log.exception("Listener for %s failed", event.value)

    def listener_count(self, event: DatabaseEvent) -> int:
        return len(self._listeners.get(event, []))

    def clear(self) -> None:
        """Remove every listener (teardown)."""
        self._listeners.clear()
