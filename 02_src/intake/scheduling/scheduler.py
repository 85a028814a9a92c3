"""Deferred continuations on top of the asyncio event loop."""

import asyncio
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)


ScheduledCallback = Callable[[], Awaitable[None]]


class ScheduledCall:
    """Handle returned by call_later; allows cancelling a pending callback."""

    def __init__(self, delay: float):
        self.delay = delay
        self.cancelled = False
        self._task: asyncio.Task | None = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()


class IScheduler(Protocol):
    """Runs an async callback once after a delay."""

    def call_later(self, delay: float, callback: ScheduledCallback) -> ScheduledCall:
        """Schedule callback to run after `delay` seconds."""
        ...

    async def shutdown(self) -> None:
        """Cancel everything still pending."""
        ...


class AsyncioScheduler:
    """IScheduler backed by asyncio tasks."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def call_later(self, delay: float, callback: ScheduledCallback) -> ScheduledCall:
        """Schedule callback to run after `delay` seconds."""
        handle = ScheduledCall(delay)
        task = asyncio.create_task(self._run(handle, callback))
        handle._task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    async def _run(self, handle: ScheduledCall, callback: ScheduledCallback) -> None:
        await asyncio.sleep(max(handle.delay, 0))
        if handle.cancelled:
            return
        try:
            await callback()
        except Exception as e:
            logger.error("Scheduled callback failed: %s", e, exc_info=True)

    async def shutdown(self) -> None:
        """Cancel everything still pending."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
