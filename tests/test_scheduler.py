"""Asyncio restart slot."""

import asyncio

import pytest

from aidohealth.voice.scheduler import AsyncioRestartScheduler


class TestAsyncioRestartScheduler:

    @pytest.mark.asyncio
    async def test_callback_runs_after_delay(self):
        scheduler = AsyncioRestartScheduler()
        fired = []

        scheduler.schedule(0.01, lambda: fired.append("restart"))
        assert scheduler.pending is True

        await asyncio.sleep(0.05)

        assert fired == ["restart"]
        assert scheduler.pending is False

    @pytest.mark.asyncio
    async def test_new_schedule_replaces_pending(self):
        scheduler = AsyncioRestartScheduler()
        fired = []

        scheduler.schedule(0.01, lambda: fired.append("first"))
        scheduler.schedule(0.01, lambda: fired.append("second"))
        await asyncio.sleep(0.05)

        assert fired == ["second"]

    @pytest.mark.asyncio
    async def test_cancel(self):
        scheduler = AsyncioRestartScheduler()
        fired = []

        scheduler.schedule(0.01, lambda: fired.append("restart"))
        scheduler.cancel()
        scheduler.cancel()
        await asyncio.sleep(0.05)

        assert fired == []
        assert scheduler.pending is False

    @pytest.mark.asyncio
    async def test_drives_engine_restart(self, make_engine, recognition):
        engine = make_engine(scheduler=AsyncioRestartScheduler())
        await engine.start()
        recognition.emit_start()

        recognition.emit_error("no-speech")
        recognition.emit_error("no-speech")
        await asyncio.sleep(0.5)

        assert recognition.starts == 2
        assert engine.is_listening is True
