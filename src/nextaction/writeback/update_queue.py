"""
Write-back queue.

Direct task actions (toggle, set type, ...) change the database first; the
note still shows the old line. The queue remembers those task ids and, on a
fixed interval, rewrites the matching lines in their notes.

A drain only runs when:
    - no other drain is running,
    - this replica is the master,
    - (per note) the user is not editing that note right now.

Mastership is checked again before every note is written, so a replica that
loses mastership mid-drain stops at the next note.

Each line is found by its exact block anchor. If a note no longer contains
the anchor nothing is changed.

The timer loop records when it last ran. ensure_running() restarts it when
it has not ticked within the stale threshold, which happens when the host
was suspended and timer callbacks were skipped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Set

from nextaction.engine.task import Task

if TYPE_CHECKING:
    from nextaction.engine.tasks import Tasks

log = logging.getLogger(__name__)


class UpdateQueue:
    def __init__(
        self,
        tasks: Tasks,
        interval: Optional[float] = None,
        stale_after: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tasks = tasks
        intervals = tasks.settings.intervals
        self.interval = interval if interval is not None else intervals.queue
        self.stale_after = stale_after if stale_after is not None else intervals.queue_stale
        self._clock = clock
        self._queue: Set[int] = set()
        self._running = False
        self._loop_task: Optional["asyncio.Task[None]"] = None
        self._last_tick: Optional[float] = None

    # ------------------------------------------------------------------
    # Queue contents
    # ------------------------------------------------------------------

    def add(self, task_id: int) -> None:
        if task_id:
            self._queue.add(task_id)
        self.ensure_running()

    def delete(self, task_id: int) -> None:
        self._queue.discard(task_id)

    def pending(self) -> Set[int]:
        return set(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic drain. Does nothing without a running event loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._last_tick = self._clock()
        self._loop_task = loop.create_task(self._run())

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def is_stale(self) -> bool:
        if self._loop_task is None or self._loop_task.done():
            return True
        return self._last_tick is not None and self._clock() - self._last_tick > self.stale_after

    def ensure_running(self) -> None:
        """Restart the timer loop if it died or stopped ticking."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        if not self.is_stale():
            return
        if self._loop_task is not None and not self._loop_task.done():
            log.warning("Update queue timer has not run for %.0fs, restarting", self._clock() - self._last_tick)
            self._loop_task.cancel()
        self._loop_task = None
        self.start()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._last_tick = self._clock()
            try:
                await self.process_queue()
            except Exception:
                log.exception("Update queue drain failed")

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def process_queue(self) -> int:
        """
        Rewrite queued task lines in their notes.

        Returns the number of lines rewritten.
        """
        if self._running or not self._queue:
            return 0
        if not self.tasks.replica.is_master():
            return 0

        self._running = True
        rewritten = 0
        try:
            for path, tasks in self._group_by_path().items():
                if not self.tasks.replica.is_master():
                    log.info("Lost mastership, stopping write-back")
                    break
                # Don't fight with the user over the note they are typing in
                if self.tasks.activity.is_editing(path):
                    continue
                rewritten += await self._rewrite_note(path, tasks)
                for task in tasks:
                    self.delete(task.id)
        finally:
            self._running = False
        return rewritten

    def _group_by_path(self) -> Dict[str, List[Task]]:
        grouped: Dict[str, List[Task]] = {}
        for task_id in sorted(self._queue):
            task = Task(self.tasks).init_from_id(task_id).task
            if not task.valid() or not task.path:
                # Nothing to write back to
                self.delete(task_id)
                continue
            grouped.setdefault(task.path, []).append(task)
        return grouped

    async def _rewrite_note(self, path: str, tasks: List[Task]) -> int:
        replacements = [(self.tasks.anchor_pattern(t.id), t.generate_markdown_task()) for t in tasks]
        count = 0

        def transform(data: str) -> str:
            nonlocal count
            lines = data.split("\n")
            for index, line in enumerate(lines):
                for pattern, canonical in replacements:
                    if pattern.search(line):
                        if line != canonical:
                            lines[index] = canonical
                            count += 1
                        break
            return "\n".join(lines)

        await self.tasks.store.process(path, transform)
        return count
