"""
Canonical rendering of task line elements.

This module is the single source of truth for how each attribute of a task is
written back into a note. The parser recognises every form produced here, so
changing a format only needs to happen in one place.

Current canonical format:
- Type: emoji (e.g. "🗃️") or hashtag (e.g. "#project"), per DisplaySettings.type
- Dates: "<emoji> YYYY-MM-DD" for scheduled, due, created and completed
- Identifier: "^<prefix><id>" block anchor, always last
"""

from typing import Dict, List

from nextaction.config import DisplayOption, DisplaySettings
from nextaction.models.task import TYPE_EMOJI, TaskEmoji, TaskType

# Types which are written into the note. INBOX is the absence of a type.
SIGNIFIED_TYPES = frozenset(
    {
        TaskType.NEXT_ACTION,
        TaskType.PROJECT,
        TaskType.WAITING_ON,
        TaskType.SOMEDAY,
        TaskType.DEPENDENT,
    }
)

# Date field → emoji, in the order they are rendered on the line
DATE_EMOJI: Dict[str, TaskEmoji] = {
    "created": TaskEmoji.CREATED,
    "scheduled": TaskEmoji.SCHEDULED,
    "due": TaskEmoji.DUE,
    "completed": TaskEmoji.COMPLETED,
}


def render_type(task_type: TaskType, option: DisplayOption) -> str:
    """
    Render a task type signifier.

    Returns an empty string for INBOX or when the type display is disabled.
    """
    if task_type not in SIGNIFIED_TYPES or option == DisplayOption.NONE:
        return ""
    if option == DisplayOption.TAG:
        return f"#{task_type.value}"
    return TYPE_EMOJI[task_type].value


def render_date(name: str, value: str, option: DisplayOption) -> str:
    """Render a date field, e.g. ``📅 2026-02-15``. Empty if hidden or unset."""
    if not value or option == DisplayOption.NONE:
        return ""
    return f"{DATE_EMOJI[name].value} {value[:10]}"


def render_dates(values: Dict[str, str], display: DisplaySettings) -> List[str]:
    """Render every set date field in canonical order."""
    rendered = []
    for name in DATE_EMOJI:
        text = render_date(name, values.get(name, ""), getattr(display, name))
        if text:
            rendered.append(text)
    return rendered


def render_anchor(prefix: str, task_id: int) -> str:
    return f"^{prefix}{task_id}"
