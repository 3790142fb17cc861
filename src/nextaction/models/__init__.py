from .task import (
    TYPE_EMOJI,
    ParsedTask,
    TaskEmoji,
    TaskRow,
    TaskStatus,
    TaskType,
    assign_existing,
)
from .note import Heading, ListItem, NoteSnapshot

__all__ = [
    "TYPE_EMOJI",
    "ParsedTask",
    "TaskEmoji",
    "TaskRow",
    "TaskStatus",
    "TaskType",
    "assign_existing",
    "Heading",
    "ListItem",
    "NoteSnapshot",
]
