"""
Parser for single markdown task lines.

Main API:
    MarkdownTaskParser(settings).process_task_line(line)  → ParsedTask | None
    MarkdownTaskParser(settings).process_text(text)       → ParsedTask

Extraction is destructive and ordered. Each token kind has its own pattern and
is consumed with get_and_remove_match, which replaces every occurrence with a
single space (so neighbouring words are never joined) and keeps the value of
the last occurrence. Whatever remains once every token has been consumed is
the task text.

The block anchor is anchored to the end of the line and the status checkbox to
the start, so the anchor is removed first and the checkbox second; everything
else is removed from the remainder.
"""

import re
from datetime import date
from typing import Callable, Optional, Pattern, Tuple

from nextaction.config import Settings
from nextaction.models.task import TYPE_EMOJI, ParsedTask, TaskEmoji, TaskStatus, TaskType
from nextaction.utils.dates import RELATIVE_DATE_TOKEN, resolve_relative_date

_STATUS_PATTERN = re.compile(r"^\s*-\s+\[(.)\]\s+")

_CHECKBOX_STATUS = {
    " ": TaskStatus.TODO,
    "x": TaskStatus.DONE,
}

_ISO_DATE = r"(\d{4}-\d{2}-\d{2})"

_VARIATION_SELECTOR = "\ufe0f"


def _emoji_pattern(emoji: str) -> str:
    """Escape an emoji, accepting it with or without a trailing variation selector."""
    base = emoji.replace(_VARIATION_SELECTOR, "")
    return re.escape(base) + _VARIATION_SELECTOR + "?"


def _date_pattern(emoji: TaskEmoji) -> Pattern[str]:
    return re.compile(rf"\s+{_emoji_pattern(emoji.value)}\s*{_ISO_DATE}(?=\s|$)")


def _relative_pattern(emoji: Optional[TaskEmoji]) -> Pattern[str]:
    lead = rf"{_emoji_pattern(emoji.value)}\s*" if emoji else ""
    return re.compile(rf"(?:^|\s+){lead}{RELATIVE_DATE_TOKEN}(?=\s|$)")


def _type_pattern(task_type: TaskType) -> Pattern[str]:
    emoji = _emoji_pattern(TYPE_EMOJI[task_type].value)
    return re.compile(rf"(?:^|\s+)({emoji}|#{re.escape(task_type.value)})(?=\s|$)")


def _tag_pattern(tag: str) -> Pattern[str]:
    return re.compile(rf"(?:^|\s)({re.escape(tag)})(?=\s|$)")


# ---------------------------------------------------------------------------
# Token matchers
# ---------------------------------------------------------------------------

def get_and_remove_match(text: str, pattern: Pattern[str]) -> Tuple[str, str]:
    """
    Remove every occurrence of ``pattern`` from ``text``.

    Each match is replaced with a single space. Returns the first capture group
    of the last match (or "" if nothing matched) and the remaining text.
    """
    found = ""
    while True:
        match = pattern.search(text)
        if not match:
            return found, text
        found = match.group(1) if match.groups() else match.group(0)
        text = text[: match.start()] + " " + text[match.end():]


class MarkdownTaskParser:
    """
    Stateless-per-call parser configured from Settings.

    Args:
        settings: Provides the block prefix and the task-level exclusion tag
        today: Clock used to resolve "$word" relative dates
    """

    def __init__(self, settings: Settings, today: Optional[Callable[[], date]] = None) -> None:
        self.settings = settings
        self.today = today or date.today
        self._id_pattern = re.compile(rf"\s*\^{re.escape(settings.task_block_prefix)}(\d+)\s*$")
        self._exclude_pattern = _tag_pattern(settings.exclude_tags.task)
        # SOMEDAY and WAITING_ON are checked first so that they win over the
        # derived types if a line carries more than one marker
        self._type_patterns = [
            (task_type, _type_pattern(task_type))
            for task_type in (
                TaskType.SOMEDAY,
                TaskType.WAITING_ON,
                TaskType.PROJECT,
                TaskType.NEXT_ACTION,
                TaskType.DEPENDENT,
                TaskType.INBOX,
            )
        ]
        self._date_patterns = {
            "due": _date_pattern(TaskEmoji.DUE),
            "scheduled": _date_pattern(TaskEmoji.SCHEDULED),
            "created": _date_pattern(TaskEmoji.CREATED),
            "completed": _date_pattern(TaskEmoji.COMPLETED),
        }
        self._relative_patterns = {
            "due": _relative_pattern(TaskEmoji.DUE),
            "scheduled": _relative_pattern(TaskEmoji.SCHEDULED),
        }
        self._bare_relative_pattern = _relative_pattern(None)
        self._stray_signifiers = [
            re.compile(_emoji_pattern(emoji.value))
            for emoji in TaskEmoji
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process_task_line(self, line: str) -> Optional[ParsedTask]:
        """
        Parse a full markdown task line (e.g. ``- [ ] Buy milk ^na5``).

        Returns None when the line is not a task.
        """
        raw_id, remainder = get_and_remove_match(line, self._id_pattern)
        char, remainder = get_and_remove_match(remainder, _STATUS_PATTERN)
        if not char:
            return None

        parsed = self.process_text(remainder)
        parsed.id = int(raw_id) if raw_id else None
        parsed.status = _CHECKBOX_STATUS.get(char.lower(), TaskStatus.TODO)
        return parsed

    def process_text(self, text: str) -> ParsedTask:
        """
        Parse arbitrary text for task elements. No checkbox or anchor is expected.
        """
        text = f" {text} "
        excluded, text = get_and_remove_match(text, self._exclude_pattern)
        task_type, text = self._get_type(text)
        relative, text = self._get_relative_dates(text)
        dates = {}
        for name, pattern in self._date_patterns.items():
            value, text = get_and_remove_match(text, pattern)
            if value:
                dates[name] = value
        # Relative dates are resolved before absolute ones are consumed, but an
        # explicit ISO date for the same field still wins
        for name, value in relative.items():
            dates.setdefault(name, value)

        # Remove remaining signifier icons which shouldn't be in the final text
        for pattern in self._stray_signifiers:
            _, text = get_and_remove_match(text, pattern)

        return ParsedTask(
            text=" ".join(text.split()),
            type=task_type,
            due=dates.get("due"),
            scheduled=dates.get("scheduled"),
            created=dates.get("created"),
            completed=dates.get("completed"),
            excluded=bool(excluded),
        )

    # ------------------------------------------------------------------
    # Token kinds
    # ------------------------------------------------------------------

    def _get_type(self, text: str) -> Tuple[Optional[TaskType], str]:
        found: Optional[TaskType] = None
        for task_type, pattern in self._type_patterns:
            value, text = get_and_remove_match(text, pattern)
            if value and found is None:
                found = task_type
        return found, text

    def _get_relative_dates(self, text: str) -> Tuple[dict, str]:
        today = self.today()
        resolved = {}
        patterns = list(self._relative_patterns.items()) + [("scheduled", self._bare_relative_pattern)]
        for name, pattern in patterns:
            text = self._consume_relative(text, pattern, name, today, resolved)
        return resolved, text

    @staticmethod
    def _consume_relative(text: str, pattern: Pattern[str], name: str, today: date, resolved: dict) -> str:
        """Replace recognised ``$word`` tokens; unrecognised ones stay in the text."""
        position = 0
        while True:
            match = pattern.search(text, position)
            if not match:
                return text
            value = resolve_relative_date(match.group(1), today)
            if value is None:
                position = match.end()
                continue
            resolved[name] = value.isoformat()
            text = text[: match.start()] + " " + text[match.end():]
            position = match.start()
