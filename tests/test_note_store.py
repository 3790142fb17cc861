"""
Tests for store/note_store.py and watcher/note_watcher.py.
"""

import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from nextaction.config import Settings
from nextaction.engine.tasks import Tasks
from nextaction.events.bus import EventBus
from nextaction.store.note_store import NoteStore
from nextaction.watcher.note_watcher import NoteWatcher


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    (root / "Projects").mkdir(parents=True)
    (root / ".trash").mkdir()
    (root / "Inbox.md").write_text("- [ ] A\n", encoding="utf-8")
    (root / "Projects" / "Home.md").write_text("- [ ] B\n", encoding="utf-8")
    (root / ".trash" / "Old.md").write_text("- [ ] C\n", encoding="utf-8")
    (root / "image.png").write_bytes(b"")
    return root


# ---------------------------------------------------------------------------
# NoteStore
# ---------------------------------------------------------------------------

class TestNoteStore:
    def test_list_notes(self, vault):
        store = NoteStore(vault, {".trash"})
        assert store.list_notes() == ["Inbox.md", "Projects/Home.md"]

    @pytest.mark.asyncio
    async def test_read_missing(self, vault):
        assert await NoteStore(vault).read("Nope.md") is None

    @pytest.mark.asyncio
    async def test_process(self, vault):
        store = NoteStore(vault)
        result = await store.process("Inbox.md", lambda data: data.upper())
        assert result == "- [ ] A\n".upper()
        assert (vault / "Inbox.md").read_text(encoding="utf-8") == result

    @pytest.mark.asyncio
    async def test_process_missing(self, vault):
        assert await NoteStore(vault).process("Nope.md", lambda data: data + "x") is None
        assert not (vault / "Nope.md").exists()

    @pytest.mark.asyncio
    async def test_unchanged_content_not_written(self, vault, monkeypatch):
        writes = []
        monkeypatch.setattr(NoteStore, "_write", staticmethod(lambda path, content: writes.append(path)))
        await NoteStore(vault).process("Inbox.md", lambda data: data)
        assert writes == []

    @pytest.mark.asyncio
    async def test_get_or_create(self, vault):
        store = NoteStore(vault)
        assert await store.get_or_create("New/Folder/Note.md") == "New/Folder/Note.md"
        assert (vault / "New" / "Folder" / "Note.md").read_text(encoding="utf-8") == ""
        assert await store.get_or_create("Inbox.md") == "Inbox.md"
        assert (vault / "Inbox.md").read_text(encoding="utf-8") == "- [ ] A\n"

    @pytest.mark.asyncio
    async def test_append(self, vault):
        store = NoteStore(vault)
        await store.append("Inbox.md", "more\n")
        assert (vault / "Inbox.md").read_text(encoding="utf-8") == "- [ ] A\nmore\n"
        assert await store.append("Nope.md", "x") is None

    @pytest.mark.asyncio
    async def test_crlf_line_endings_kept(self, vault):
        (vault / "Windows.md").write_bytes(b"- [ ] A\r\n- [ ] B\r\n")
        store = NoteStore(vault)

        assert await store.read("Windows.md") == "- [ ] A\n- [ ] B\n"
        result = await store.process("Windows.md", lambda data: data.replace("A", "C"))
        assert result == "- [ ] C\n- [ ] B\n"
        assert (vault / "Windows.md").read_bytes() == b"- [ ] C\r\n- [ ] B\r\n"

    def test_atomic_write_leaves_no_temp_files(self, vault):
        NoteStore._write(vault / "Inbox.md", "replaced\n")
        assert sorted(p.name for p in vault.iterdir() if p.is_file()) == ["Inbox.md", "image.png"]


# ---------------------------------------------------------------------------
# NoteWatcher
# ---------------------------------------------------------------------------

def _make_engine(vault: Path) -> Tasks:
    settings = Settings(vault_root=vault, exclude_dirs={".trash"})
    settings.replica.device_id = "laptop"
    return Tasks(settings, NoteStore(vault, settings.exclude_dirs), EventBus(), today=lambda: date(2026, 10, 18))


class TestNoteWatcher:
    @pytest.mark.asyncio
    async def test_new_notes_reported(self, vault):
        tasks = _make_engine(vault)
        watcher = NoteWatcher(tasks, poll_interval=60)

        assert await watcher.check_for_changes() == 2
        assert tasks.pending_notes() == ["Inbox.md", "Projects/Home.md"]

        # Nothing changed since the last poll
        assert await watcher.check_for_changes() == 0
        await tasks.unload()

    @pytest.mark.asyncio
    async def test_deleted_note_orphans_tasks(self, vault):
        tasks = _make_engine(vault)
        watcher = NoteWatcher(tasks, poll_interval=60)
        await watcher.check_for_changes()
        await tasks.flush_notes()
        row = next(r for r in tasks.db.rows() if r.path == "Inbox.md")
        assert not row.orphaned
        # Reconciliation wrote anchors into both notes; take that as the baseline
        await watcher.check_for_changes()

        (vault / "Inbox.md").unlink()
        assert await watcher.check_for_changes() == 1
        assert tasks.db.get_row(row.id).orphaned
        assert not next(r for r in tasks.db.rows() if r.path == "Projects/Home.md").orphaned
        await tasks.unload()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, vault):
        tasks = _make_engine(vault)
        watcher = NoteWatcher(tasks, poll_interval=60)
        watcher.start()
        # Notes present at start are the baseline, not changes
        assert await watcher.check_for_changes() == 0
        await watcher.stop()
        await tasks.unload()

    @pytest.mark.asyncio
    async def test_picks_up_master_election(self, vault):
        tasks = _make_engine(vault)
        other = Settings(vault_root=vault)
        other.replica.device_id = "desktop"
        other.replica.master_id = "desktop"
        other.save_shared()

        await NoteWatcher(tasks, poll_interval=60).check_for_changes()
        assert not tasks.replica.is_master()
        await tasks.unload()

    @pytest.mark.asyncio
    async def test_block_prefix_fixed_after_start(self, vault):
        tasks = _make_engine(vault)
        tasks.settings.settings_file.parent.mkdir(parents=True, exist_ok=True)
        tasks.settings.settings_file.write_text('{"task_block_prefix": "zz"}', encoding="utf-8")

        watcher = NoteWatcher(tasks, poll_interval=60)
        await watcher.check_for_changes()
        await tasks.flush_notes()

        assert tasks.block_prefix == "na"
        assert (vault / "Inbox.md").read_text(encoding="utf-8").startswith("- [ ] A ^na")
        await tasks.unload()
