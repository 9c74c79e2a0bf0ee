"""Cancellable interval tasks running on the bridge event loop."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

LOGGER = logging.getLogger(__name__)

TickCallback = Callable[[], Union[None, Awaitable[Any]]]


class PeriodicTask:
    """Invoke ``callback`` every ``interval_seconds`` until stopped.

    The callback may be a plain function or a coroutine function. Exceptions it
    raises are logged and the task keeps ticking.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: TickCallback,
        *,
        name: str = "periodic-task",
        run_immediately: bool = False,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("Interval must be positive")
        self._interval = float(interval_seconds)
        self._callback = callback
        self._name = name
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def name(self) -> str:
        return self._name

    def start(self) -> None:
        task = self._task
        if task and not task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._worker(), name=self._name)

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    def running(self) -> bool:
        task = self._task
        return bool(task and not task.done())

    async def tick(self) -> None:
        """Run the callback once, logging instead of raising."""

        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.debug("Periodic task %s raised an exception", self._name, exc_info=True)

    async def _worker(self) -> None:
        if self._run_immediately:
            await self.tick()
        while True:
            await asyncio.sleep(self._interval)
            await self.tick()


__all__ = ["PeriodicTask"]
