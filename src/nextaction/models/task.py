"""
Core task data models.

TaskRow is the persisted unit held by the database. It is a fixed record:
every field that can be stored in the JSON table is declared here, and
from_dict/to_dict are the only places that translate to and from the
serialized form.

ParsedTask is the partial record produced by the line parser. Fields left as
None carry "no information" and never overwrite stored values when the two
are merged.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Optional


class TaskStatus(str, Enum):
    TODO = " "
    DONE = "x"


class TaskType(str, Enum):
    INBOX = "inbox"
    NEXT_ACTION = "next-action"
    PROJECT = "project"
    WAITING_ON = "waiting-on"
    SOMEDAY = "someday"
    # A task in a project sequence, waiting on the previous task to be completed
    DEPENDENT = "dependent"


class TaskEmoji(str, Enum):
    INBOX = "📥"
    NEXT_ACTION = "➡️"
    PROJECT = "🗃️"
    WAITING_ON = "⏸️"
    SOMEDAY = "💤"
    DEPENDENT = "⛓️"
    CREATED = "➕"
    SCHEDULED = "⏳"
    DUE = "📅"
    COMPLETED = "✅"


TYPE_EMOJI: Dict[TaskType, TaskEmoji] = {
    TaskType.INBOX: TaskEmoji.INBOX,
    TaskType.NEXT_ACTION: TaskEmoji.NEXT_ACTION,
    TaskType.PROJECT: TaskEmoji.PROJECT,
    TaskType.WAITING_ON: TaskEmoji.WAITING_ON,
    TaskType.SOMEDAY: TaskEmoji.SOMEDAY,
    TaskType.DEPENDENT: TaskEmoji.DEPENDENT,
}


@dataclass
class TaskRow:
    """A single task as stored in the database."""

    id: int = 0
    status: TaskStatus = TaskStatus.TODO
    text: str = ""
    path: str = ""
    type: TaskType = TaskType.INBOX
    created: str = ""
    due: str = ""
    scheduled: str = ""
    completed: str = ""
    orphaned: int = 0
    line: int = 0
    parent: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TaskRow:
        """Build a row from its JSON form, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        row = cls(**values)
        row.status = _coerce_status(row.status)
        row.type = _coerce_type(row.type)
        row.id = int(row.id or 0)
        row.orphaned = int(row.orphaned or 0)
        row.line = int(row.line or 0)
        row.parent = int(row.parent or 0)
        return row

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["type"] = self.type.value
        return data

    def copy(self) -> TaskRow:
        return replace(self)


@dataclass
class ParsedTask:
    """
    Structured fields extracted from one line of text.

    ``None`` means the line said nothing about that field.
    """

    text: str
    status: Optional[TaskStatus] = None
    type: Optional[TaskType] = None
    id: Optional[int] = None
    created: Optional[str] = None
    due: Optional[str] = None
    scheduled: Optional[str] = None
    completed: Optional[str] = None
    excluded: bool = False


def _coerce_status(value: Any) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        return TaskStatus.DONE if str(value).strip().lower() == "x" else TaskStatus.TODO


def _coerce_type(value: Any) -> TaskType:
    try:
        return TaskType(value)
    except ValueError:
        return TaskType.INBOX


def assign_existing(target: TaskRow, *sources: Any) -> TaskRow:
    """
    Overlay every truthy field of each source onto target, in order.

    Sources may be TaskRow or ParsedTask instances, or None. Empty strings,
    zeros and None never overwrite what is already on the target.
    """
    names = [f.name for f in fields(TaskRow)]
    for source in sources:
        if source is None:
            continue
        for name in names:
            value = getattr(source, name, None)
            if value:
                setattr(target, name, value)
    return target
