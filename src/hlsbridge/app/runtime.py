"""Background event loop that owns the bridge context."""
from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..engine.context import BridgeContext
from ..engine.router import MediaRouter
from ..engine.status import BridgeStatus, StatusBroadcaster
from ..settings import BridgeSettings

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class BridgeRuntime:
    """Run the asyncio loop in a daemon thread and marshal calls onto it.

    Flask handlers run in their own threads; they only reach the context via
    :meth:`call`, which schedules a coroutine on the loop and waits for it.
    """

    def __init__(
        self,
        router: MediaRouter,
        settings: BridgeSettings,
        *,
        broadcaster: Optional[StatusBroadcaster] = None,
        context_factory: Callable[..., BridgeContext] = BridgeContext,
        call_timeout: float = 5.0,
    ) -> None:
        self._router = router
        self._settings = settings
        self._broadcaster = broadcaster
        self._context_factory = context_factory
        self._call_timeout = call_timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._context: Optional[BridgeContext] = None
        self._ready = threading.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        thread = self._thread
        if thread and thread.is_alive():
            return
        self._ready.clear()
        loop = asyncio.new_event_loop()
        self._loop = loop
        thread = threading.Thread(target=self._run, args=(loop,), name="bridge-event-loop", daemon=True)
        self._thread = thread
        thread.start()
        if not self._ready.wait(timeout=self._call_timeout):
            raise RuntimeError("Bridge event loop did not start")
        self.call(self._create_context)
        LOGGER.info("Bridge runtime started")

    def stop(self) -> None:
        loop = self._loop
        thread = self._thread
        if loop is None or thread is None or not thread.is_alive():
            return
        if self._context is not None:
            try:
                self.call(self._context.shutdown, timeout=30.0)
            except Exception:
                LOGGER.exception("Bridge context shutdown failed")
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=5.0)
        self._thread = None
        self._loop = None
        self._context = None
        LOGGER.info("Bridge runtime stopped")

    def running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive())

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def context(self) -> BridgeContext:
        if self._context is None:
            raise RuntimeError("Bridge runtime is not running")
        return self._context

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("Bridge runtime is not running")
        return self._loop

    def submit(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> concurrent.futures.Future[T]:
        """Schedule ``func(*args, **kwargs)`` on the loop without waiting."""

        return asyncio.run_coroutine_threadsafe(func(*args, **kwargs), self.loop)

    def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> T:
        """Run ``func`` on the loop and block until it returns."""

        future = self.submit(func, *args, **kwargs)
        return future.result(timeout=timeout if timeout is not None else self._call_timeout)

    def snapshot(self) -> BridgeStatus:
        return self.call(self.context.snapshot)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run(self, loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        loop.call_soon(self._ready.set)
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    async def _create_context(self) -> None:
        context = self._context_factory(self._router, self._settings, broadcaster=self._broadcaster)
        self._context = context
        context.start_heartbeat()


__all__ = ["BridgeRuntime"]
