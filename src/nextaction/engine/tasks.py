"""
The reconciliation engine.

Tasks owns the database table and reconciles notes against it:

    note changed ──▶ notify_note_changed(path)      (debounced per note)
                 ──▶ process_note(path)             (parse, merge, sequence, upsert)
                 ──▶ rows not seen are orphaned
                 ──▶ stale lines rewritten, unless the note drifted
                 ──▶ TASKS_EXTERNAL_CHANGE

Everything runs on one event loop. The only suspension points are note store
calls, and a note is never reconciled twice at once: each note has its own
Debouncer, which keeps at most one fire in flight.

Derived views (get_tasks, get_tasklist) and the orphan retention sweep also
live here.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import date
from typing import Callable, Dict, List, Optional, Pattern, Set

from nextaction.config import Settings
from nextaction.db.table import Table
from nextaction.engine.replica import ReplicaState, UserActivity
from nextaction.engine.task import ProcessedItem, Task, append_line
from nextaction.events.bus import DatabaseEvent, EventBus
from nextaction.models.note import NoteSnapshot
from nextaction.models.task import TaskStatus, TaskType
from nextaction.parsers.note_index import build_snapshot
from nextaction.parsers.task_parser import MarkdownTaskParser
from nextaction.store.note_store import NoteStore
from nextaction.utils.debounce import Debouncer
from nextaction.writeback.update_queue import UpdateQueue

log = logging.getLogger(__name__)

_COMPLETED_LINE = re.compile(r"^[ \t]*[-*+]\s+\[[xX]\]")


class Tasks:
    """
    Args:
        settings: Runtime configuration
        store: Note store the engine reads and writes notes through
        bus: Event bus for change notifications
        replica: Single-writer election state (defaults to single replica)
        activity: User activity tracker (defaults to never active)
        today: Clock for dates written into rows and lines
        clock: Clock for orphan timestamps, in epoch seconds
    """

    table_name = "tasks"

    def __init__(
        self,
        settings: Settings,
        store: NoteStore,
        bus: EventBus,
        replica: Optional[ReplicaState] = None,
        activity: Optional[UserActivity] = None,
        *,
        today: Callable[[], date] = date.today,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.bus = bus
        self.replica = replica or ReplicaState(settings)
        self.activity = activity or UserActivity(settings.intervals.user_activity)
        self.today = today
        self.clock = clock
        self.parser = MarkdownTaskParser(settings, today)
        self.db = Table(
            self.table_name,
            settings.db_path,
            save_delay=settings.intervals.save_debounce,
            on_change=self._table_changed,
            writable=self.replica.is_master,
            today=today,
        )
        self.update_queue = UpdateQueue(self)
        self.revision = 0
        self.inconsistencies: Dict[int, str] = {}
        self._note_debouncers: Dict[str, Debouncer] = {}
        self._last_cleanup: Optional[float] = None
        self._anchor_patterns: Dict[int, Pattern[str]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> None:
        self.db.load()
        self.update_queue.start()

    async def unload(self) -> None:
        """Stop timers and write anything still pending."""
        for debouncer in self._note_debouncers.values():
            debouncer.cancel()
        await self.update_queue.stop()
        await self.db.flush()

    # ------------------------------------------------------------------
    # Identity helpers
    # ------------------------------------------------------------------

    @property
    def block_prefix(self) -> str:
        return self.settings.task_block_prefix

    def anchor_pattern(self, task_id: int) -> Pattern[str]:
        """Matches a line ending in this task's block anchor."""
        pattern = self._anchor_patterns.get(task_id)
        if pattern is None:
            pattern = re.compile(rf"(?:^|\s)\^{re.escape(self.block_prefix)}{task_id}\s*$")
            self._anchor_patterns[task_id] = pattern
        return pattern

    def get_task_by_id(self, task_id: int) -> Task:
        return Task(self).init_from_id(task_id).task

    def report_inconsistency(self, task_id: int, message: str) -> None:
        if self.inconsistencies.get(task_id) != message:
            log.warning("Task %d: %s", task_id, message)
        self.inconsistencies[task_id] = message

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _table_changed(self) -> None:
        self.revision += 1

    def emit_local_change(self) -> None:
        self.bus.emit(DatabaseEvent.TASKS_CHANGED)

    def request_view(self) -> None:
        self.bus.emit(DatabaseEvent.VIEW_REQUESTED)

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    def notify_note_changed(self, path: str) -> None:
        """Schedule reconciliation of a note; bursts for one note collapse into one pass."""
        debouncer = self._note_debouncers.get(path)
        if debouncer is None:
            debouncer = Debouncer(
                lambda: self._process_changed_note(path),
                self.settings.intervals.reconcile_debounce,
                name=f"reconcile:{path}",
            )
            self._note_debouncers[path] = debouncer
        debouncer.schedule()

    def pending_notes(self) -> List[str]:
        return sorted(path for path, d in self._note_debouncers.items() if d.pending)

    async def flush_notes(self) -> None:
        """Reconcile every note with a pending change notification now."""
        for debouncer in list(self._note_debouncers.values()):
            await debouncer.flush()

    async def _process_changed_note(self, path: str) -> None:
        if self.activity.is_editing(path):
            # Leave the note alone while the user is typing in it
            log.debug("Note %s is being edited, deferring reconciliation", path)
            self._note_debouncers[path].schedule()
            return
        await self.process_note(path)

    async def note_deleted(self, path: str) -> bool:
        """Orphan every task recorded in a note that no longer exists."""
        changed = self._orphan_rows(path, set(), int(self.clock()))
        if changed:
            self.bus.emit(DatabaseEvent.TASKS_EXTERNAL_CHANGE)
        return changed

    async def process_all_notes(self) -> int:
        """Reconcile every note in the vault. Returns how many notes changed rows."""
        changed = 0
        for path in self.store.list_notes():
            try:
                if await self.process_note(path):
                    changed += 1
            except Exception:
                log.exception("Failed to process %s", path)
        return changed

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def process_note(self, path: str, snapshot: Optional[NoteSnapshot] = None) -> bool:
        """
        Reconcile one note against the database.

        Returns True if any row changed.
        """
        if not self.replica.is_master():
            log.debug("Not the master replica, skipping %s", path)
            return False

        if snapshot is None:
            content = await self.store.read(path)
            if content is None:
                return await self.note_deleted(path)
            snapshot = build_snapshot(path, content)

        now = int(self.clock())

        if self.settings.exclude_tags.note in snapshot.tags:
            log.debug("Note %s is excluded from processing", path)
            changed = self._orphan_rows(path, set(), now)
            if changed:
                self.bus.emit(DatabaseEvent.TASKS_EXTERNAL_CHANGE)
            return changed

        processed: List[ProcessedItem] = []
        changed = False
        for item in sorted(snapshot.task_items, key=lambda i: i.line):
            task = Task(self)
            result = task.init_from_list_item(item, snapshot, processed)
            if not result.valid:
                continue
            processed.append(
                ProcessedItem(task=task, item=item, has_changes=result.has_changes, rewrite=not result.untouched)
            )
            changed = changed or result.has_changes

        seen = {p.task.id for p in processed}
        if self._orphan_rows(path, seen, now):
            changed = True

        if await self._rewrite_lines(snapshot, processed, now):
            changed = True

        if changed:
            self.bus.emit(DatabaseEvent.TASKS_EXTERNAL_CHANGE)
        self.cleanup_orphans()
        return changed

    def promote_to_project(self, root_id: int, previous: List[ProcessedItem]) -> None:
        """
        Make sure the root of a task hierarchy is a PROJECT.

        A completed root keeps the type it had when it was ticked off.
        """
        entry = next((p for p in previous if p.task.id == root_id), None)
        root = entry.task if entry is not None else self.get_task_by_id(root_id)
        if not root.valid() or root.type == TaskType.PROJECT or root.is_completed:
            return
        root.data.type = TaskType.PROJECT
        self.db.update(root.data)
        if entry is not None:
            entry.has_changes = True
        else:
            self.add_task_to_update_queue(root_id)

    async def _rewrite_lines(self, snapshot: NoteSnapshot, processed: List[ProcessedItem], now: int) -> bool:
        """
        Write canonical lines for every task whose line differs.

        Only happens if the live note still matches the snapshot exactly.
        Otherwise the affected rows are orphaned so that the next change
        notification reprocesses them. Returns True if rows were orphaned.
        """
        lines = snapshot.lines
        rewrites: Dict[int, str] = {}
        ids: Dict[int, int] = {}
        for entry in processed:
            if not entry.rewrite:
                continue
            canonical = entry.task.generate_markdown_task()
            if lines[entry.item.line] != canonical:
                rewrites[entry.item.line] = canonical
                ids[entry.item.line] = entry.task.id
        if not rewrites:
            return False

        drifted = False

        def transform(live: str) -> str:
            nonlocal drifted
            if live != snapshot.content:
                drifted = True
                return live
            updated = list(lines)
            for line_num, text in rewrites.items():
                updated[line_num] = text
            return "\n".join(updated)

        result = await self.store.process(snapshot.path, transform)
        if result is not None and not drifted:
            log.debug("Rewrote %d lines in %s", len(rewrites), snapshot.path)
            return False

        # The note moved on since it was read. Never risk overwriting the
        # user's edits; drop these tasks and pick them up on the next pass.
        log.warning("Note %s changed while processing, %d tasks queued for reprocessing", snapshot.path, len(ids))
        for task_id in ids.values():
            row = self.db.get_row(task_id)
            if row is not None and not row.orphaned:
                row.orphaned = now
                self.db.update(row)
        return True

    def _orphan_rows(self, path: str, seen: Set[int], now: int) -> bool:
        changed = False
        for row in self.db.rows():
            if row.path == path and not row.orphaned and row.id not in seen:
                row.orphaned = now
                if self.db.update(row) is not None:
                    changed = True
        return changed

    # ------------------------------------------------------------------
    # Orphan retention
    # ------------------------------------------------------------------

    def cleanup_orphans(self, force: bool = False) -> int:
        """
        Orphan tasks without a note and delete tasks orphaned past retention.

        Runs at most once per sweep interval unless forced. Returns the number
        of deleted rows.
        """
        now = int(self.clock())
        if not force and self._last_cleanup is not None:
            if now - self._last_cleanup < self.settings.intervals.orphan_sweep:
                return 0
        if not self.replica.is_master():
            return 0
        self._last_cleanup = now

        deleted = 0
        retention = self.settings.retention_seconds
        for row in self.db.rows():
            if not row.path and not row.orphaned:
                row.orphaned = now
                self.db.update(row)
            elif row.orphaned and now - row.orphaned > retention:
                if self.db.delete(row.id):
                    deleted += 1
        if deleted:
            log.info("Deleted %d orphaned tasks", deleted)
        return deleted

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_tasks(self, task_type: Optional[TaskType] = None) -> List[Task]:
        """Open tasks that live in a note, oldest first."""
        rows = [
            row
            for row in self.db.rows()
            if not row.orphaned
            and row.status != TaskStatus.DONE
            and row.path
            and (task_type is None or row.type == task_type)
        ]
        rows.sort(key=lambda row: (row.created, row.id))
        return [Task(self).init_from_row(row).task for row in rows]

    def get_tasklist(self) -> List[Task]:
        """
        The aggregated next-actions list.

        Order: due or overdue tasks (earliest date first), inbox, projects with
        no open subtask, next actions, waiting-on. Tasks scheduled after today
        are left out entirely.
        """
        today = self.today()
        tasks = [task for task in self.get_tasks() if not task.is_scheduled_after(today)]

        due = sorted(
            (task for task in tasks if task.is_due(today)),
            key=lambda task: task.is_due(today),
        )
        groups = [
            due,
            [t for t in tasks if t.type == TaskType.INBOX],
            [t for t in tasks if t.type == TaskType.PROJECT and not t.has_active_subtask()],
            [t for t in tasks if t.type == TaskType.NEXT_ACTION],
            [t for t in tasks if t.type == TaskType.WAITING_ON],
        ]

        result: List[Task] = []
        seen: Set[int] = set()
        for group in groups:
            for task in group:
                if task.id not in seen:
                    seen.add(task.id)
                    result.append(task)
        return result

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    def add_task_to_update_queue(self, task_id: int) -> None:
        self.update_queue.add(task_id)

    # ------------------------------------------------------------------
    # Note-level commands
    # ------------------------------------------------------------------

    async def quick_capture(self, text: str) -> Optional[Task]:
        """Create a task from free text and append it to the default note."""
        task = Task(self)
        if not task.init_from_text(text).valid:
            return None
        path = await self.store.get_or_create(self.settings.default_note)
        task.data.path = path
        line = task.generate_markdown_task()
        result = await self.store.process(path, lambda data: append_line(data, line))
        if result is not None:
            task.data.line = result.rstrip("\n").count("\n")
        self.db.update(task.data)
        self.emit_local_change()
        return task

    async def archive_completed(self, path: str) -> int:
        """
        Move every completed task line of a note to the archive note.

        Returns the number of archived lines.
        """
        archived: List[str] = []

        def remove_completed(data: str) -> str:
            kept = []
            for line in data.split("\n"):
                if _COMPLETED_LINE.match(line):
                    archived.append(line.strip())
                else:
                    kept.append(line)
            return "\n".join(kept) if archived else data

        await self.store.process(path, remove_completed)
        if not archived:
            return 0

        archive = await self.store.get_or_create(self.settings.archive_note)
        await self.store.process(archive, lambda data: append_line(data, "\n".join(archived)))
        log.info("Archived %d completed tasks from %s", len(archived), path)
        return len(archived)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def status(self) -> dict:
        rows = self.db.rows()
        return {
            "tasks_indexed": len(rows),
            "orphaned": sum(1 for r in rows if r.orphaned),
            "autoincrement": self.db.autoincrement,
            "revision": self.revision,
            "save_pending": self.db.save_pending,
            "pending_notes": self.pending_notes(),
            "update_queue": sorted(self.update_queue.pending()),
            "device_id": self.replica.device_id,
            "master_id": self.replica.master_id,
            "is_master": self.replica.is_master(),
            "inconsistencies": {str(k): v for k, v in self.inconsistencies.items()},
        }
