"""
Identity-indexed JSON table of task rows.

Design:
    Rows           — Dict[int, TaskRow]   (authoritative storage, O(1) by id)
    Autoincrement  — int                  (never decreases; always > max(id))
    Persistence    — one JSON document {"autoincrement": n, "rows": [...]}

Writes to disk are debounced: a burst of mutations produces one write once
the table has been quiet for ``save_delay`` seconds. Every logical mutation
calls ``on_change`` straight away, whether or not the write has happened.

Only a replica allowed to write (see engine.replica) persists anything; the
``writable`` callable is consulted before every mutation.
"""

import json
import logging
import os
import tempfile
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional

from nextaction.models.task import TaskRow
from nextaction.utils.debounce import Debouncer

log = logging.getLogger(__name__)


def _always() -> bool:
    return True


class Table:
    """
    Args:
        name: Table name, used in log messages
        path: JSON file the table is persisted to (None keeps it in memory)
        save_delay: Debounce delay for writes, in seconds
        on_change: Called after every logical mutation
        writable: Returns False when this process must not mutate state
        today: Clock used to stamp the created date of rows
    """

    def __init__(
        self,
        name: str,
        path: Optional[Path] = None,
        *,
        save_delay: float = 3.0,
        on_change: Optional[Callable[[], None]] = None,
        writable: Callable[[], bool] = _always,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.name = name
        self.path = path
        self.initialised = path is None
        self._rows: Dict[int, TaskRow] = {}
        self._autoincrement = 1
        self._on_change = on_change
        self._writable = writable
        self._today = today
        self._saver = Debouncer(self.write, save_delay, name=f"save-{name}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def rows(self) -> List[TaskRow]:
        """Snapshot of every row, as copies."""
        return [row.copy() for row in self._rows.values()]

    def get_row(self, task_id: int) -> Optional[TaskRow]:
        if not task_id:
            return None
        row = self._rows.get(task_id)
        return row.copy() if row else None

    @property
    def autoincrement(self) -> int:
        return self._autoincrement

    def __len__(self) -> int:
        return len(self._rows)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert(self, data: TaskRow) -> Optional[TaskRow]:
        """
        Insert a new row and allocate its id.

        Returns None if the row already carries an id: inserts never choose
        their own identity.
        """
        if data.id:
            log.debug("Insert should not include a row ID: %r", data)
            return None
        if not self._check_writable("insert"):
            return None
        row = data.copy()
        row.id = self._next_id()
        if not row.created:
            row.created = self._today().isoformat()
        self._rows[row.id] = row
        self._changed()
        return row.copy()

    def update(self, data: TaskRow) -> Optional[TaskRow]:
        """
        Update a row by id.

        Unknown ids are inserted as-is (imported or hand-written ids), stamped
        with a created date if they have none. Returns None when no row id is
        given, or when every field matches the stored row.
        """
        if not data.id:
            return None
        if not self._check_writable("update"):
            return None
        # Keep the counter ahead of imported or manually edited ids
        self._autoincrement = max(self._autoincrement, data.id + 1)
        existing = self._rows.get(data.id)
        row = data.copy()
        if existing is not None:
            if existing == row:
                return None
        elif not row.created:
            row.created = self._today().isoformat()
        self._rows[row.id] = row
        self._changed()
        return row.copy()

    def insert_or_update(self, data: TaskRow) -> Optional[TaskRow]:
        """
        Dispatch on the presence of an id.

        An update that changed nothing still returns the row; only insert
        misuse returns None.
        """
        if data.id:
            result = self.update(data)
            if result is None and self._writable():
                return data.copy()
            return result
        return self.insert(data)

    def delete(self, task_id: int) -> bool:
        if task_id not in self._rows:
            return False
        if not self._check_writable("delete"):
            return False
        del self._rows[task_id]
        log.debug("Deleted task %d", task_id)
        self._changed()
        return True

    def import_data(self, raw: str) -> bool:
        """
        Replace the table contents with a serialized table.

        Invalid data leaves the table untouched and returns False.
        """
        try:
            rows, autoincrement = self._decode(raw)
        except (ValueError, TypeError, KeyError):
            log.warning("Unable to import %s table data", self.name)
            return False
        self._rows = rows
        self._autoincrement = max(self._autoincrement, autoincrement)
        self._changed()
        return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """
        Load table data from disk.

        A missing or corrupt file leaves an empty table; the table is marked
        initialised either way so later writes replace the bad file.
        """
        if self.path is not None and self.path.exists():
            try:
                self._rows, self._autoincrement = self._decode(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError, TypeError, KeyError):
                log.warning("Database %s not readable, starting empty", self.path)
                self._rows, self._autoincrement = {}, 1
        self.initialised = True
        log.info("Loaded %s table: %d rows", self.name, len(self._rows))

    def write(self) -> None:
        """Write the table to disk now (atomic replace)."""
        if self.path is None:
            return
        if not self.initialised:
            log.debug("Database not correctly initialised, skipping write")
            return
        if not self._writable():
            log.debug("Not the master replica, skipping write of %s", self.name)
            return
        payload = json.dumps(
            {"autoincrement": self._autoincrement, "rows": [r.to_dict() for r in self._rows.values()]},
            indent=2,
            ensure_ascii=False,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=str(self.path.parent), prefix=".tmp_", suffix=".json", delete=False
        ) as tmp:
            tmp.write(payload)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_name = tmp.name
        os.replace(tmp_name, self.path)

    async def flush(self) -> None:
        """Run any pending debounced write immediately."""
        await self._saver.flush()

    @property
    def save_pending(self) -> bool:
        return self._saver.pending

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _next_id(self) -> int:
        task_id = self._autoincrement
        self._autoincrement += 1
        return task_id

    def _check_writable(self, operation: str) -> bool:
        if self._writable():
            return True
        log.debug("Refusing %s on %s: not the master replica", operation, self.name)
        return False

    def _changed(self) -> None:
        self._saver.schedule()
        if self._on_change:
            self._on_change()

    @staticmethod
    def _decode(raw: str):
        data = json.loads(raw)
        rows = {}
        for item in data["rows"]:
            row = TaskRow.from_dict(item)
            if row.id:
                rows[row.id] = row
        # Double-check the autoincrement
        existing = max(rows) if rows else 0
        autoincrement = max(int(data.get("autoincrement", 1)), existing + 1)
        return rows, autoincrement
