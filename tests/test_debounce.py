"""
Tests for utils/debounce.py.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from nextaction.utils.debounce import DebounceState, Debouncer


class TestDebouncer:
    @pytest.mark.asyncio
    async def test_burst_collapses_into_one_fire(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), 0.01)
        for _ in range(5):
            debouncer.schedule()
        await asyncio.sleep(0.1)
        assert calls == [1]
        assert debouncer.state == DebounceState.IDLE

    @pytest.mark.asyncio
    async def test_async_callback(self):
        calls = []

        async def callback():
            calls.append(1)

        debouncer = Debouncer(callback, 0.01)
        debouncer.schedule()
        await asyncio.sleep(0.1)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_schedule_while_firing_fires_again_after(self):
        calls = []
        gate = asyncio.Event()

        async def callback():
            calls.append(1)
            if len(calls) == 1:
                await gate.wait()

        debouncer = Debouncer(callback, 0.01)
        debouncer.schedule()
        await asyncio.sleep(0.05)
        assert debouncer.state == DebounceState.FIRING

        debouncer.schedule()
        debouncer.schedule()
        # Still only the one fire in flight
        assert debouncer.state == DebounceState.FIRING
        assert len(calls) == 1

        gate.set()
        await asyncio.sleep(0.1)
        assert len(calls) == 2
        assert debouncer.state == DebounceState.IDLE

    @pytest.mark.asyncio
    async def test_flush_fires_immediately(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), 60)
        debouncer.schedule()
        await debouncer.flush()
        assert calls == [1]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_flush_when_idle_does_nothing(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), 60)
        await debouncer.flush()
        assert calls == []

    @pytest.mark.asyncio
    async def test_cancel(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), 0.01)
        debouncer.schedule()
        debouncer.cancel()
        await asyncio.sleep(0.05)
        assert calls == []
        assert debouncer.state == DebounceState.IDLE

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged(self, caplog):
        def callback():
            raise RuntimeError("boom")

        debouncer = Debouncer(callback, 60, name="failing")
        debouncer.schedule()
        await debouncer.flush()
        assert debouncer.state == DebounceState.IDLE
        assert "debounced callback failed" in caplog.text

    def test_schedule_without_loop_defers_until_flush(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), 0.01)
        debouncer.schedule()
        assert debouncer.pending
        assert calls == []

        asyncio.run(debouncer.flush())
        assert calls == [1]
