"""Fire-and-forget task tracking."""

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

logger = structlog.get_logger()


class BackgroundDispatcher:
    """Runs coroutines off the request path and keeps references to them.

    Tasks are held until they finish so the event loop does not collect
    them early, and ``drain`` lets shutdown wait for stragglers.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    def dispatch(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` without awaiting it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task failed",
                task=task.get_name(),
                error=repr(exc),
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every pending task, cancelling whatever outlives ``timeout``."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, not_done = await asyncio.wait(tasks, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning("Cancelled background tasks on drain", count=len(not_done))
        logger.debug("Background tasks drained", finished=len(done))
