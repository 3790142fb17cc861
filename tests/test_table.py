"""
Tests for db/table.py.

Covers identity allocation, no-op updates, imports, persistence and the
writable gate. Runs without an event loop, so debounced saves stay pending
and writes are triggered explicitly.
"""

import json
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from nextaction.db.table import Table
from nextaction.models.task import TaskRow, TaskStatus, TaskType

TODAY = date(2026, 10, 18)


@pytest.fixture
def table():
    changes = []
    t = Table("tasks", on_change=lambda: changes.append(1), today=lambda: TODAY)
    t.changes = changes
    return t


# ---------------------------------------------------------------------------
# Insert / update
# ---------------------------------------------------------------------------

class TestInsert:
    def test_ids_allocated_in_order(self, table):
        first = table.insert(TaskRow(text="a"))
        second = table.insert(TaskRow(text="b"))
        assert (first.id, second.id) == (1, 2)
        assert table.autoincrement == 3

    def test_insert_with_id_refused(self, table):
        assert table.insert(TaskRow(id=4, text="a")) is None
        assert len(table) == 0
        assert table.changes == []

    def test_created_stamped(self, table):
        assert table.insert(TaskRow(text="a")).created == "2026-10-18"

    def test_returns_copy(self, table):
        row = table.insert(TaskRow(text="a"))
        row.text = "changed"
        assert table.get_row(row.id).text == "a"


class TestUpdate:
    def test_identical_update_is_noop(self, table):
        row = table.insert(TaskRow(text="a"))
        table.changes.clear()
        assert table.update(row) is None
        assert table.changes == []

    def test_changed_field(self, table):
        row = table.insert(TaskRow(text="a"))
        row.status = TaskStatus.DONE
        updated = table.update(row)
        assert updated.status == TaskStatus.DONE
        assert table.get_row(row.id).status == TaskStatus.DONE

    def test_unknown_id_inserted_and_counter_bumped(self, table):
        table.update(TaskRow(id=41, text="imported"))
        assert table.get_row(41).text == "imported"
        assert table.insert(TaskRow(text="next")).id == 42

    def test_unknown_id_keeps_created(self, table):
        table.update(TaskRow(id=7, text="x", created="2025-01-01"))
        assert table.get_row(7).created == "2025-01-01"

    def test_update_without_id(self, table):
        assert table.update(TaskRow(text="a")) is None

    def test_insert_or_update_returns_row_on_noop(self, table):
        row = table.insert(TaskRow(text="a"))
        assert table.insert_or_update(row) == row

    def test_delete(self, table):
        row = table.insert(TaskRow(text="a"))
        assert table.delete(row.id) is True
        assert table.delete(row.id) is False
        assert table.get_row(row.id) is None


class TestIdentityMonotonicity:
    def test_import_never_lowers_counter(self, table):
        for _ in range(5):
            table.insert(TaskRow(text="x"))
        raw = json.dumps({"autoincrement": 2, "rows": [{"id": 1, "text": "only"}]})
        assert table.import_data(raw) is True
        assert table.insert(TaskRow(text="new")).id == 6

    def test_import_counter_ahead_of_rows(self, table):
        raw = json.dumps({"autoincrement": 1, "rows": [{"id": 9, "text": "high"}]})
        table.import_data(raw)
        assert table.insert(TaskRow(text="new")).id == 10

    def test_invalid_import_leaves_table(self, table):
        table.insert(TaskRow(text="keep"))
        assert table.import_data("not json") is False
        assert len(table) == 1

    def test_delete_does_not_reuse_ids(self, table):
        row = table.insert(TaskRow(text="a"))
        table.delete(row.id)
        assert table.insert(TaskRow(text="b")).id == row.id + 1


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestPersistence:
    def test_write_and_load(self, tmp_path):
        path = tmp_path / "db" / "tasks.json"
        table = Table("tasks", path, today=lambda: TODAY)
        table.load()
        table.insert(TaskRow(text="persist me", type=TaskType.PROJECT))
        table.write()

        reloaded = Table("tasks", path)
        reloaded.load()
        row = reloaded.get_row(1)
        assert row.text == "persist me"
        assert row.type == TaskType.PROJECT
        assert reloaded.autoincrement == 2

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "tasks.json"
        path.write_text("{broken", encoding="utf-8")
        table = Table("tasks", path)
        table.load()
        assert len(table) == 0
        assert table.initialised

    def test_write_skipped_before_load(self, tmp_path):
        path = tmp_path / "tasks.json"
        table = Table("tasks", path)
        table.insert(TaskRow(text="a"))
        table.write()
        assert not path.exists()

    def test_save_is_debounced(self, table):
        table.insert(TaskRow(text="a"))
        assert table.save_pending


class TestWritableGate:
    def test_not_writable_refuses_mutations(self, tmp_path):
        allowed = [False]
        table = Table("tasks", tmp_path / "tasks.json", writable=lambda: allowed[0])
        table.load()
        assert table.insert(TaskRow(text="a")) is None
        assert table.update(TaskRow(id=3, text="a")) is None
        assert table.insert_or_update(TaskRow(id=3, text="a")) is None

        allowed[0] = True
        table.update(TaskRow(id=3, text="a"))
        allowed[0] = False
        assert table.delete(3) is False
        table.write()
        assert not (tmp_path / "tasks.json").exists()
