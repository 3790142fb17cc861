"""
The task entity.

A Task is a disposable view over one database row: several Task objects may
exist for the same id, and only the row held by the Table is authoritative.
Tasks know how to build themselves from an id, a row, free text, or a list
item in a note (the heart of reconciliation), how to walk the hierarchy, and
how to render themselves back into a note line.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Dict, List, Optional

from nextaction.models.note import ListItem, NoteSnapshot
from nextaction.models.task import TaskRow, TaskStatus, TaskType, assign_existing
from nextaction.utils.dates import parse_iso_date
from nextaction.utils.formatting import render_anchor, render_dates, render_type

if TYPE_CHECKING:
    from nextaction.engine.tasks import Tasks

log = logging.getLogger(__name__)

# Types kept by a subtask that is first in its sequence
_PRESERVED_TYPES = (TaskType.SOMEDAY, TaskType.WAITING_ON)


@dataclass
class TaskInitResult:
    """Standard result of every ``init_from_*`` method."""

    task: Task
    has_changes: bool = False
    valid: bool = False
    # A completed task left exactly as it was recorded; never rewritten
    untouched: bool = False


@dataclass
class ProcessedItem:
    """A task already handled earlier in the same reconciliation pass."""

    task: Task
    item: ListItem
    has_changes: bool = False
    rewrite: bool = True


class Task:
    def __init__(self, tasks: Tasks) -> None:
        self.tasks = tasks
        self.data = self.default_data()

    def __repr__(self) -> str:
        return f"Task(id={self.id}, type={self.type.value}, text={self.text!r})"

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------

    def default_data(self) -> TaskRow:
        return TaskRow(created=self.tasks.today().isoformat())

    @property
    def id(self) -> int:
        return self.data.id

    @property
    def status(self) -> TaskStatus:
        return self.data.status

    @property
    def type(self) -> TaskType:
        return self.data.type

    @property
    def text(self) -> str:
        return self.data.text

    @property
    def path(self) -> str:
        return self.data.path

    @property
    def line(self) -> int:
        return self.data.line

    @property
    def parent(self) -> int:
        return self.data.parent

    @property
    def is_completed(self) -> bool:
        return self.data.status == TaskStatus.DONE

    def reset(self) -> None:
        self.data = self.default_data()

    def valid(self) -> bool:
        return bool(self.data.id)

    def is_due(self, today: date) -> Optional[date]:
        """
        The earliest of the due and scheduled dates, if it is on or before today.
        """
        candidates = [parse_iso_date(self.data.due), parse_iso_date(self.data.scheduled)]
        reached = [d for d in candidates if d is not None and d <= today]
        return min(reached) if reached else None

    def is_scheduled_after(self, today: date) -> bool:
        scheduled = parse_iso_date(self.data.scheduled)
        return scheduled is not None and scheduled > today

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def init_from_id(self, task_id: int) -> TaskInitResult:
        row = self.tasks.db.get_row(task_id)
        if row:
            return self.init_from_row(row)
        self.reset()
        return self._result()

    def init_from_row(self, row: TaskRow) -> TaskInitResult:
        """Populate from a row, taking any missing values from the defaults."""
        self.data = assign_existing(self.default_data(), row)
        self.data.orphaned = row.orphaned
        return self._result()

    def init_from_text(self, text: str) -> TaskInitResult:
        """
        Create a new task from arbitrary text.

        Task elements are parsed out of the text, but a new row is always
        created: no block anchor is expected here.
        """
        parsed = self.tasks.parser.process_text(text)
        record = assign_existing(self.default_data(), parsed)
        if not record.text.strip():
            return self._result()
        result = self.tasks.db.insert_or_update(record)
        if result is None:
            # Unable to insert, leave the default data so valid() is False
            self.reset()
            return self._result()
        self.data = result
        return self._result(has_changes=True)

    def init_from_list_item(
        self,
        item: ListItem,
        snapshot: NoteSnapshot,
        previous: List[ProcessedItem],
    ) -> TaskInitResult:
        """
        Reconcile one task line of a note with the database.

        ``previous`` holds the tasks already processed in this pass, in line
        order; sequencing decisions for this task depend on them.
        """
        settings = self.tasks.settings
        lines = snapshot.lines
        original_line = lines[item.line] if item.line < len(lines) else ""
        parsed = self.tasks.parser.process_task_line(original_line)
        if parsed is None or parsed.excluded:
            return self._result()

        if self._section_excluded(item, lines, settings.exclude_tags.section):
            log.debug("Task %r is in an excluded section", parsed.text)
            return self._result()

        # The first occurrence of an id in a note keeps it, later ones are new tasks
        if parsed.id and any(p.task.id == parsed.id for p in previous):
            log.debug("Duplicate id %d in %s, treating as a new task", parsed.id, snapshot.path)
            parsed.id = None

        existing = self.tasks.db.get_row(parsed.id or 0)

        # Defaults, then the stored row, then what the note says
        record = assign_existing(self.default_data(), existing, parsed)
        if existing is not None:
            record.orphaned = existing.orphaned
        if not record.text.strip():
            return self._result()

        if parsed.status == TaskStatus.DONE and (existing is None or existing.status == TaskStatus.DONE):
            # Completed tasks stay exactly as they were when ticked off, so they
            # can be archived to another note without their path changing
            self.data = record
            return TaskInitResult(task=self, has_changes=False, valid=self.valid(), untouched=True)
        if parsed.status == TaskStatus.DONE:
            record.completed = parsed.completed or self.tasks.today().isoformat()
        else:
            record.completed = ""

        # Live position within the note
        record.line = item.line
        record.orphaned = 0
        record.path = snapshot.path

        self._apply_sequencing(record, item, previous)

        has_changes = existing is None or record != existing

        result = self.tasks.db.insert_or_update(record)
        if result is None:
            self.reset()
            return self._result()
        self.data = result
        return self._result(has_changes)

    def _result(self, has_changes: bool = False) -> TaskInitResult:
        return TaskInitResult(task=self, has_changes=has_changes, valid=self.valid())

    @staticmethod
    def _section_excluded(item: ListItem, lines: List[str], tag: str) -> bool:
        start = 0
        for line_num in range(item.line - 1, -1, -1):
            if re.match(r"^#{1,6}\s", lines[line_num]):
                start = line_num
                break
        section = "\n".join(lines[start: item.line])
        return bool(re.search(rf"(^|\s){re.escape(tag)}($|\s)", section, re.MULTILINE))

    # ------------------------------------------------------------------
    # Sequencing
    # ------------------------------------------------------------------

    def _apply_sequencing(self, record: TaskRow, item: ListItem, previous: List[ProcessedItem]) -> None:
        """
        Resolve parent and type from the tasks already seen in this pass.

        Within one project only the first open subtask in note order is
        actionable; every later open subtask waits on it as DEPENDENT. An
        open non-project ancestor also blocks its own subtasks.
        """
        parent_entry = None
        if item.parent_line is not None:
            parent_entry = next((p for p in previous if p.item.line == item.parent_line), None)

        # A parent line that was never stored (an untouched completed line with
        # no row) or whose row is orphaned cannot be referenced
        parent_row = self.tasks.db.get_row(parent_entry.task.id) if parent_entry is not None else None
        if parent_row is None or parent_row.orphaned:
            # The note is the source of truth: no parent line, no parent
            record.parent = 0
            # A former project step goes back to the inbox to be classified
            if record.type == TaskType.DEPENDENT:
                record.type = TaskType.INBOX
            return

        parent_task = parent_entry.task
        record.parent = parent_task.id
        chain = parent_task.ancestors + [parent_task]
        root = chain[0]
        self.tasks.promote_to_project(root.id, previous)

        blocked = False
        for prev in previous:
            prev_task = prev.task
            if prev_task.id in (root.id, record.id):
                continue
            if prev_task.is_completed or prev_task.type == TaskType.PROJECT:
                continue
            if root.id in {a.id for a in prev_task.ancestors}:
                blocked = True
                break

        if blocked:
            record.type = TaskType.DEPENDENT
        elif record.type not in _PRESERVED_TYPES:
            record.type = TaskType.NEXT_ACTION

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    @property
    def ancestors(self) -> List[Task]:
        """Every parent back to the root level, root first."""
        chain: List[Task] = []
        seen = {self.id}
        parent_id = self.parent
        while parent_id:
            if parent_id in seen:
                self.tasks.report_inconsistency(self.id, f"parent chain loops back to task {parent_id}")
                break
            seen.add(parent_id)
            parent_task = self.tasks.get_task_by_id(parent_id)
            if not parent_task.valid():
                break
            chain.append(parent_task)
            parent_id = parent_task.parent
        chain.reverse()
        return chain

    @property
    def descendants(self) -> List[Task]:
        """Every non-orphaned task below this one, depth first, siblings in note order."""
        children: Dict[int, List[TaskRow]] = {}
        for row in self.tasks.db.rows():
            if row.parent and not row.orphaned:
                children.setdefault(row.parent, []).append(row)

        result: List[Task] = []
        visited = {self.id}
        stack = sorted(children.get(self.id, []), key=lambda r: r.line, reverse=True)
        while stack:
            row = stack.pop()
            if row.id in visited:
                self.tasks.report_inconsistency(row.id, "task reached twice while collecting descendants")
                continue
            visited.add(row.id)
            result.append(Task(self.tasks).init_from_row(row).task)
            stack.extend(sorted(children.get(row.id, []), key=lambda r: r.line, reverse=True))
        return result

    def has_active_subtask(self) -> bool:
        return any(not task.is_completed for task in self.descendants)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def get_type_signifier(self) -> str:
        # No signifier cluttering up completed tasks
        if self.is_completed:
            return ""
        return render_type(self.type, self.tasks.settings.display.type)

    def generate_markdown_task(self) -> str:
        """Render this task as a canonical note line."""
        display = self.tasks.settings.display
        indent = "\t" * len(self.ancestors)

        completed = ""
        if self.is_completed:
            completed = self.data.completed or self.tasks.today().isoformat()
        dates = render_dates(
            {
                "created": self.data.created,
                "scheduled": self.data.scheduled,
                "due": self.data.due,
                "completed": completed,
            },
            display,
        )

        parts = [
            f"{indent}- [{self.status.value}]",
            self.get_type_signifier(),
            self.text,
            *dates,
            render_anchor(self.tasks.block_prefix, self.id),
        ]
        return " ".join(part for part in parts if part)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def update(self) -> bool:
        """Save to the database and queue the note line for rewriting."""
        if not self.id or not self.path:
            log.debug("Unable to update task %r as there is no ID or path for it", self.text)
            return False
        self.tasks.db.update(self.data)
        self.tasks.add_task_to_update_queue(self.id)
        self.tasks.emit_local_change()
        return True

    def toggle(self) -> bool:
        if self.is_completed:
            self.data.status = TaskStatus.TODO
            self.data.completed = ""
        else:
            self.data.status = TaskStatus.DONE
            self.data.completed = self.tasks.today().isoformat()
        return self.update()

    def set_as(self, task_type: TaskType) -> bool:
        if task_type == self.type:
            return False
        self.data.type = task_type
        return self.update()

    async def move(self, to_path: str, before_task: Optional[int] = None, after_task: Optional[int] = None) -> bool:
        """
        Move this task's line to another note.

        The new line goes immediately before ``before_task`` or after
        ``after_task`` when that task lives in the target note, otherwise at the
        end of the note. Returns False if either note is missing.
        """
        store = self.tasks.store
        if not self.id or not self.path:
            return False
        if not await store.exists(self.path) or not await store.exists(to_path):
            log.debug("Unable to move task %d: note missing", self.id)
            return False

        anchor = self.tasks.anchor_pattern(self.id)

        def remove(data: str) -> str:
            lines = data.split("\n")
            index = next((i for i, line in enumerate(lines) if anchor.search(line)), None)
            if index is not None:
                del lines[index]
            return "\n".join(lines)

        await store.process(self.path, remove)

        if to_path != self.path:
            self.data.parent = 0
        self.data.path = to_path
        new_line = self.generate_markdown_task()
        reference = before_task or after_task
        reference_row = self.tasks.db.get_row(reference or 0)
        reference_anchor = None
        if reference_row is not None and reference_row.path == to_path:
            reference_anchor = self.tasks.anchor_pattern(reference_row.id)

        def insert(data: str) -> str:
            lines = data.split("\n")
            if reference_anchor is not None:
                index = next((i for i, line in enumerate(lines) if reference_anchor.search(line)), None)
                if index is not None:
                    lines.insert(index if before_task else index + 1, new_line)
                    return "\n".join(lines)
            return append_line(data, new_line)

        result = await store.process(to_path, insert)
        if result is None:
            return False
        self.data.line = next((i for i, line in enumerate(result.split("\n")) if anchor.search(line)), 0)
        self.tasks.db.update(self.data)
        self.tasks.emit_local_change()
        return True

    async def add_subtask(self, text: str) -> Optional[Task]:
        """
        Add a subtask after the last existing subtask of this task.

        A root task gaining a subtask becomes a project.
        """
        if not self.id or not self.path:
            return None
        subtask = Task(self.tasks)
        if not subtask.init_from_text(text).valid:
            return None
        subtask.data.parent = self.id
        subtask.data.path = self.path

        anchors = [self.tasks.anchor_pattern(t.id) for t in [self] + self.descendants]
        new_line = subtask.generate_markdown_task()
        inserted_at: List[int] = []

        def insert(data: str) -> str:
            lines = data.split("\n")
            positions = [i for i, line in enumerate(lines) if any(a.search(line) for a in anchors)]
            if not positions:
                return data
            index = max(positions) + 1
            lines.insert(index, new_line)
            inserted_at.append(index)
            return "\n".join(lines)

        await self.tasks.store.process(self.path, insert)
        if not inserted_at:
            log.debug("Task %d not found in %s, subtask not written", self.id, self.path)
            subtask.data.path = ""
            self.tasks.db.update(subtask.data)
            return None

        subtask.data.line = inserted_at[0]
        self.tasks.db.update(subtask.data)
        if not self.parent and self.type != TaskType.PROJECT:
            self.set_as(TaskType.PROJECT)
        else:
            self.tasks.emit_local_change()
        return subtask


def append_line(data: str, line: str) -> str:
    """Append a line at the end of note content, keeping a trailing newline."""
    body = data.rstrip("\n")
    return f"{body}\n{line}\n" if body else f"{line}\n"
