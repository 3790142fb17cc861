"""
Debounced callbacks on the asyncio event loop.

A Debouncer moves through three states:

    IDLE ──schedule()──▶ PENDING ──delay elapsed──▶ FIRING ──done──▶ IDLE

Calling schedule() while PENDING restarts the delay (a burst collapses into a
single fire). Calling schedule() while FIRING marks the debouncer dirty; once
the running fire completes a new delay starts. Only one fire is ever in
flight.

When schedule() is called with no running event loop the debouncer stays
PENDING without a timer; the next schedule() from inside a loop, or an
explicit flush(), fires it.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

log = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[None]]]


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FIRING = "firing"


class Debouncer:
    def __init__(self, callback: Callback, delay: float, name: str = "debouncer") -> None:
        self._callback = callback
        self.delay = delay
        self.name = name
        self.state = DebounceState.IDLE
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional["asyncio.Task[None]"] = None
        self._dirty = False

    @property
    def pending(self) -> bool:
        return self.state == DebounceState.PENDING

    def schedule(self) -> None:
        """Request a fire after ``delay`` seconds of quiet."""
        if self.state == DebounceState.FIRING:
            self._dirty = True
            return

        self._cancel_timer()
        self.state = DebounceState.PENDING
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("%s: no running loop, fire deferred until flush", self.name)
            return
        self._handle = loop.call_later(self.delay, self._start_fire)

    def cancel(self) -> None:
        """Drop a pending fire. A fire already in flight is left to finish."""
        self._cancel_timer()
        self._dirty = False
        if self.state == DebounceState.PENDING:
            self.state = DebounceState.IDLE

    async def flush(self) -> None:
        """Fire immediately if pending, and wait for any fire in flight."""
        if self._task is not None and not self._task.done():
            await self._task
        if self.state == DebounceState.PENDING:
            self._cancel_timer()
            await self._fire()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _start_fire(self) -> None:
        self._handle = None
        self._task = asyncio.ensure_future(self._fire())

    async def _fire(self) -> None:
        self.state = DebounceState.FIRING
        self._dirty = False
        try:
            result: Any = self._callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.exception("%s: debounced callback failed", self.name)
        finally:
            self.state = DebounceState.IDLE
            if self._dirty:
                self._dirty = False
                self.schedule()
