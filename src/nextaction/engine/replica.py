"""
Single-writer election and user activity tracking.

In a multi-replica deployment (the same vault synced to several machines) only
the master replica may mutate persisted state. Election is manual: a replica
claims mastership, which writes its device id into the shared settings file,
and every other replica sees the change the next time it refreshes.

An empty master id means nobody has been elected, which is the single-replica
case: every replica may write.
"""

import logging
import time
from typing import Callable, Optional

from nextaction.config import Settings

log = logging.getLogger(__name__)


class ReplicaState:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def device_id(self) -> str:
        return self._settings.replica.device_id

    @property
    def master_id(self) -> str:
        return self._settings.replica.master_id

    def is_master(self) -> bool:
        master = self._settings.replica.master_id
        return not master or master == self._settings.replica.device_id

    def claim(self) -> None:
        """Elect this replica as master."""
        self._settings.replica.master_id = self.device_id
        self._settings.save_shared()
        log.info("Replica %s is now master", self.device_id)

    def release(self) -> None:
        """Give up mastership. Only the current master can release it."""
        if self.master_id and self.master_id != self.device_id:
            log.info("Replica %s is not master, nothing to release", self.device_id)
            return
        self._settings.replica.master_id = ""
        self._settings.save_shared()
        log.info("Replica %s released mastership", self.device_id)

    def refresh(self) -> None:
        """Pick up an election made by another replica."""
        was_master = self.is_master()
        self._settings.apply_shared()
        if was_master and not self.is_master():
            log.warning("Replica %s lost mastership to %s", self.device_id, self.master_id)


class UserActivity:
    """
    Tracks whether the user is working on this replica, and in which note.

    A user counts as active for ``window`` seconds after their last action.
    """

    def __init__(self, window: float = 10.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._last_activity: Optional[float] = None
        self._active_note: Optional[str] = None

    def touch(self, note: Optional[str] = None) -> None:
        """Record user activity, optionally in a specific note."""
        self._last_activity = self._clock()
        if note is not None:
            self._active_note = note or None

    def is_active(self) -> bool:
        if self._last_activity is None:
            return False
        return self._clock() - self._last_activity < self.window

    @property
    def active_note(self) -> Optional[str]:
        """The note the user is editing, if they have been active recently."""
        return self._active_note if self.is_active() else None

    def is_editing(self, path: str) -> bool:
        return self.active_note == path
