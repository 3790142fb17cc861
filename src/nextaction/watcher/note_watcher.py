"""
Vault note watcher, polling-based.

Synced folders and container volume mounts do not reliably forward
filesystem events, so notes are detected by periodic mtime polling.

Every poll interval the watcher:
1. Walks the vault for notes (respecting excluded directories)
2. Compares mtimes with the previous poll
3. Notifies the engine of new or modified notes (debounced per note there)
   and of deleted notes
4. Re-reads the shared settings so a master elected on another replica is
   picked up, and makes sure the write-back queue timer is still alive
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

from nextaction.engine.tasks import Tasks

log = logging.getLogger(__name__)


class NoteWatcher:
    """
    Usage:
        watcher = NoteWatcher(tasks)
        watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(self, tasks: Tasks, poll_interval: Optional[float] = None) -> None:
        self._tasks = tasks
        self._store = tasks.store
        self._poll_interval = poll_interval or tasks.settings.intervals.poll
        self._loop_task: Optional["asyncio.Task[None]"] = None

        # Known notes and their mtimes from the last poll cycle
        self._known_notes: Dict[Path, float] = {}

    def start(self) -> None:
        """Start polling on the running event loop."""
        log.info("Starting note watcher (polling every %.1fs)", self._poll_interval)
        self._known_notes = self._snapshot_notes()
        self._loop_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        log.info("Stopping note watcher")
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.check_for_changes()
            except Exception:
                log.exception("Error during poll cycle")

    async def check_for_changes(self) -> int:
        """
        Single poll cycle: compare current state against the previous one.

        Returns the number of notes reported as changed or deleted.
        """
        self._tasks.replica.refresh()
        self._tasks.update_queue.ensure_running()

        current = self._snapshot_notes()
        reported = 0

        for file_path, mtime in current.items():
            old_mtime = self._known_notes.get(file_path)
            if old_mtime is None or mtime > old_mtime:
                log.debug("Note changed: %s", file_path)
                self._tasks.notify_note_changed(self._store.relative(file_path))
                reported += 1

        for file_path in self._known_notes:
            if file_path not in current:
                log.debug("Note deleted: %s", file_path)
                await self._tasks.note_deleted(self._store.relative(file_path))
                reported += 1

        self._known_notes = current
        return reported

    def _snapshot_notes(self) -> Dict[Path, float]:
        """Walk the vault and return {path: mtime} for every note."""
        snapshot: Dict[Path, float] = {}
        try:
            for file_path in self._store.walk_notes():
                try:
                    snapshot[file_path] = file_path.stat().st_mtime
                except OSError:
                    pass
        except OSError:
            log.exception("Error walking vault for notes")
        return snapshot
