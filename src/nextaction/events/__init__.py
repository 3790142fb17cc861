from .bus import DatabaseEvent, EventBus

__all__ = ["DatabaseEvent", "EventBus"]
