"""Cancellation utilities for streaming turns and simulated latency."""

from __future__ import annotations

import asyncio
from typing import Optional

__all__ = [
    "AiCancellationToken",
    "AiTaskHandle",
]


class AiCancellationToken:
    """Cancellation helper shared between a turn and its workers."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Signal the associated turn to stop as soon as practical."""

        self._event.set()

    def cancelled(self) -> bool:
        """Return ``True`` when cancellation was requested."""

        return self._event.is_set()

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Suspend until cancellation is requested or timeout expires."""

        if timeout is None:
            await self._event.wait()
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds and return ``False`` if cancelled meanwhile."""

        if delay <= 0:
            await asyncio.sleep(0)
            return not self.cancelled()
        return not await self.wait(delay)


class AiTaskHandle:
    """Track the task and token of one running turn."""

    __slots__ = ("_token", "_task")

    def __init__(self, token: AiCancellationToken, task: "asyncio.Future[None]") -> None:
        self._token = token
        self._task = task

    def cancel(self) -> None:
        """Request cancellation and abort any pending await of the task."""

        self._token.cancel()
        if not self._task.done():
            self._task.cancel()

    def is_running(self) -> bool:
        """Return ``True`` while the task is active."""

        return not self._task.done()

    @property
    def token(self) -> AiCancellationToken:
        return self._token

    async def wait(self) -> None:
        """Await the task, swallowing the cancellation requested via :meth:`cancel`."""

        try:
            await self._task
        except asyncio.CancelledError:
            if not self._token.cancelled():
                raise
