"""Signal escalation used to stop FFmpeg processes."""
from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, Optional

LOGGER = logging.getLogger(__name__)


class StopStrategy:
    """Stop a process with SIGINT, then SIGTERM, then SIGKILL.

    SIGINT lets FFmpeg finalise the current segment and playlist. Each step
    waits a bounded time for the process to exit before escalating.
    """

    def __init__(
        self,
        *,
        graceful_timeout: float = 5.0,
        terminate_timeout: float = 5.0,
        kill_timeout: float = 2.0,
    ) -> None:
        self._graceful_timeout = max(0.0, graceful_timeout)
        self._terminate_timeout = max(0.0, terminate_timeout)
        self._kill_timeout = max(0.0, kill_timeout)

    async def shutdown(self, process: Any, *, label: str = "ffmpeg") -> Optional[int]:
        """Stop ``process`` and return its exit code when known."""

        if process.returncode is not None:
            return process.returncode

        LOGGER.info("Sending SIGINT to %s (pid=%s)", label, process.pid)
        if not self._signal(process, signal.SIGINT, label):
            return await self._wait_for_exit(process, self._kill_timeout)

        returncode = await self._wait_for_exit(process, self._graceful_timeout)
        if returncode is None:
            LOGGER.warning("%s still running after SIGINT; sending SIGTERM", label)
            self._signal(process, signal.SIGTERM, label)
            returncode = await self._wait_for_exit(process, self._terminate_timeout)

        if returncode is None:
            LOGGER.error("%s ignored SIGTERM; sending SIGKILL", label)
            self._signal(process, signal.SIGKILL, label)
            returncode = await self._wait_for_exit(process, self._kill_timeout)
            if returncode is None:
                LOGGER.error("%s still running after SIGKILL attempt", label)
                returncode = process.returncode

        if returncode is not None:
            LOGGER.info("%s exited with %s", label, returncode)
        else:
            LOGGER.warning("%s exit code unknown after stop sequence", label)
        return returncode

    @staticmethod
    def _signal(process: Any, signum: int, label: str) -> bool:
        try:
            process.send_signal(signum)
        except ProcessLookupError:
            return False
        except Exception:  # pragma: no cover - system dependent
            LOGGER.exception("Failed to send signal %s to %s", signum, label)
        return True

    @staticmethod
    async def _wait_for_exit(process: Any, timeout: float) -> Optional[int]:
        try:
            return await asyncio.wait_for(asyncio.shield(process.wait()), timeout=timeout)
        except asyncio.TimeoutError:
            return None


__all__ = ["StopStrategy"]
