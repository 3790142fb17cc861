"""
Tests for events/bus.py.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from nextaction.events.bus import DatabaseEvent, EventBus


class TestEventBus:
    def test_emit_reaches_listeners(self):
        bus = EventBus()
        seen = []
        bus.on(DatabaseEvent.TASKS_CHANGED, seen.append)
        bus.emit(DatabaseEvent.TASKS_CHANGED)
        bus.emit(DatabaseEvent.VIEW_REQUESTED)
        assert seen == [DatabaseEvent.TASKS_CHANGED]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.on(DatabaseEvent.TASKS_CHANGED, seen.append)
        unsubscribe()
        bus.emit(DatabaseEvent.TASKS_CHANGED)
        assert seen == []
        assert bus.listener_count(DatabaseEvent.TASKS_CHANGED) == 0

    def test_off_unknown_listener(self):
        bus = EventBus()
        bus.off(DatabaseEvent.TASKS_CHANGED, print)

    def test_failing_listener_does_not_stop_others(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise ValueError("listener bug")

        bus.on(DatabaseEvent.TASKS_EXTERNAL_CHANGE, broken)
        bus.on(DatabaseEvent.TASKS_EXTERNAL_CHANGE, seen.append)
        bus.emit(DatabaseEvent.TASKS_EXTERNAL_CHANGE)
        assert seen == [DatabaseEvent.TASKS_EXTERNAL_CHANGE]

    def test_clear(self):
        bus = EventBus()
        bus.on(DatabaseEvent.TASKS_CHANGED, lambda e: None)
        bus.on(DatabaseEvent.VIEW_REQUESTED, lambda e: None)
        bus.clear()
        assert bus.listener_count(DatabaseEvent.TASKS_CHANGED) == 0
        assert bus.listener_count(DatabaseEvent.VIEW_REQUESTED) == 0

    def test_buses_are_independent(self):
        first, second = EventBus(), EventBus()
        seen = []
        first.on(DatabaseEvent.TASKS_CHANGED, seen.append)
        second.emit(DatabaseEvent.TASKS_CHANGED)
        assert seen == []
