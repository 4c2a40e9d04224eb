"""Tests for BackgroundDispatcher."""

import asyncio

from structlog.testing import capture_logs

from novabot.services.background import BackgroundDispatcher


class TestBackgroundDispatcher:
    async def test_tracks_until_done(self) -> None:
        dispatcher = BackgroundDispatcher()
        gate = asyncio.Event()

        async def job() -> str:
            await gate.wait()
            return "ok"

        task = dispatcher.dispatch(job(), name="job")
        assert dispatcher.pending == 1

        gate.set()
        await dispatcher.drain()

        assert task.result() == "ok"
        assert dispatcher.pending == 0

    async def test_failures_are_logged(self) -> None:
        dispatcher = BackgroundDispatcher()

        async def boom() -> None:
            raise RuntimeError("boom")

        with capture_logs() as logs:
            dispatcher.dispatch(boom(), name="boom-task")
            await dispatcher.drain()
            await asyncio.sleep(0)

        failures = [log for log in logs if log["event"] == "Background task failed"]
        assert failures[0]["task"] == "boom-task"
        assert dispatcher.pending == 0

    async def test_drain_cancels_stragglers(self) -> None:
        dispatcher = BackgroundDispatcher()
        task = dispatcher.dispatch(asyncio.sleep(10), name="slow")

        await dispatcher.drain(timeout=0.01)
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

        assert task.cancelled()
        assert dispatcher.pending == 0
