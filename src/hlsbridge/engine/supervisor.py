"""Spawn, monitor and stop one FFmpeg process per session key."""
from __future__ import annotations

import asyncio
import itertools
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from ..exceptions import TranscoderSpawnError
from ..logging_config import FFMPEG_LOGGER
from .stop_strategy import StopStrategy
from .timers import PeriodicTask

LOGGER = logging.getLogger(__name__)
FFMPEG_LOG = logging.getLogger(FFMPEG_LOGGER)

Spawner = Callable[[Sequence[str]], Awaitable[Any]]

_WARNING_MARKERS = ("error", "fatal", "aborting", "invalid", "failed")
_LINE_BREAK = re.compile(rb"[\r\n]")
_READ_CHUNK = 4096
_MAX_PENDING = 64 * 1024


async def spawn_ffmpeg(command: Sequence[str]) -> asyncio.subprocess.Process:
    """Launch ``command`` with stdin closed and stdout/stderr piped."""

    try:
        return await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise TranscoderSpawnError(f"Unable to launch {command[0] if command else 'ffmpeg'}: {exc}") from exc


@dataclass(eq=False)
class ProcessHandle:
    """A running (or finished) FFmpeg process and the timers bound to it."""

    key: str
    generation: int
    process: Any
    command: List[str]
    started_at: float = field(default_factory=time.time)
    keyframe_timers: List[PeriodicTask] = field(default_factory=list)
    exited: asyncio.Event = field(default_factory=asyncio.Event)
    returncode: Optional[int] = None
    monitor: Optional[asyncio.Task[None]] = None

    @property
    def pid(self) -> Optional[int]:
        return getattr(self.process, "pid", None)

    @property
    def running(self) -> bool:
        return not self.exited.is_set()

    def cancel_timers(self) -> None:
        timers, self.keyframe_timers = self.keyframe_timers, []
        for timer in timers:
            timer.stop()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "generation": self.generation,
            "pid": self.pid,
            "running": self.running,
            "returncode": self.returncode,
            "started_at": self.started_at,
        }


class ProcessSupervisor:
    """Keep at most one live FFmpeg process per session key.

    A process that exits on its own is not restarted: the supervisor drops its
    reference (when it still points at that generation), cancels the keyframe
    timers bound to it and logs the exit code.
    """

    def __init__(
        self,
        *,
        stop_strategy: Optional[StopStrategy] = None,
        spawner: Optional[Spawner] = None,
    ) -> None:
        self._stop_strategy = stop_strategy or StopStrategy()
        self._spawner: Spawner = spawner or spawn_ffmpeg
        self._handles: Dict[str, ProcessHandle] = {}
        self._generations = itertools.count(1)
        self._background_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def spawn(
        self,
        key: str,
        command: Sequence[str],
        *,
        keyframe_timers: Iterable[PeriodicTask] = (),
    ) -> Optional[ProcessHandle]:
        """Start ``command`` for ``key``; returns ``None`` when the launch fails."""

        timers = list(keyframe_timers)
        previous = self._handles.get(key)
        if previous is not None:
            await self.stop(previous)

        generation = next(self._generations)
        LOGGER.info("Starting FFmpeg for %s (generation %d)", key, generation)
        LOGGER.debug("FFmpeg command for %s: %s", key, " ".join(command))
        try:
            process = await self._spawner(list(command))
        except TranscoderSpawnError as exc:
            LOGGER.error("FFmpeg spawn failed for %s: %s", key, exc)
            for timer in timers:
                timer.stop()
            return None

        handle = ProcessHandle(
            key=key,
            generation=generation,
            process=process,
            command=list(command),
            keyframe_timers=timers,
        )
        self._handles[key] = handle
        for timer in timers:
            timer.start()
        handle.monitor = self._spawn_background_task(self._watch(handle))
        LOGGER.info("FFmpeg started for %s (pid=%s)", key, handle.pid)
        return handle

    async def stop(self, target: ProcessHandle | str | None) -> Optional[int]:
        """Stop the process of a handle or key; unknown keys are a no-op."""

        handle = self._handles.get(target) if isinstance(target, str) else target
        if handle is None:
            return None
        if self._handles.get(handle.key) is handle:
            del self._handles[handle.key]
        handle.cancel_timers()
        if not handle.running:
            return handle.returncode
        returncode = await self._stop_strategy.shutdown(handle.process, label=f"ffmpeg[{handle.key}]")
        if handle.monitor is not None:
            try:
                await asyncio.wait_for(asyncio.shield(handle.exited.wait()), timeout=2.0)
            except asyncio.TimeoutError:
                LOGGER.debug("Output drain for %s did not finish after stop", handle.key)
        if handle.returncode is None:
            handle.returncode = returncode
        return handle.returncode

    async def stop_all(self) -> None:
        for handle in list(self._handles.values()):
            await self.stop(handle)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    def lookup(self, key: str) -> Optional[ProcessHandle]:
        return self._handles.get(key)

    def keys(self) -> List[str]:
        return sorted(self._handles)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {key: handle.to_dict() for key, handle in sorted(self._handles.items())}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _spawn_background_task(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _watch(self, handle: ProcessHandle) -> None:
        process = handle.process
        results = await asyncio.gather(
            _drain(getattr(process, "stderr", None), handle.key, stream="stderr"),
            _drain(getattr(process, "stdout", None), handle.key, stream="stdout"),
            return_exceptions=True,
        )
        for stream, result in zip(("stderr", "stdout"), results):
            if isinstance(result, Exception):
                LOGGER.warning("Stopped reading FFmpeg %s for %s: %s", stream, handle.key, result)
        # Only a reaped process counts as exited; stop() still signals anything else.
        returncode = await process.wait()
        handle.returncode = returncode
        handle.exited.set()
        handle.cancel_timers()
        if self._handles.get(handle.key) is handle:
            del self._handles[handle.key]
            LOGGER.warning(
                "FFmpeg for %s (generation %d) exited with %s",
                handle.key,
                handle.generation,
                returncode,
            )
        else:
            LOGGER.info("FFmpeg for %s (generation %d) exited with %s", handle.key, handle.generation, returncode)


def _relay(raw: bytes, key: str, stream: str) -> None:
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return
    lowered = text.lower()
    level = logging.WARNING if any(marker in lowered for marker in _WARNING_MARKERS) else logging.DEBUG
    FFMPEG_LOG.log(level, "ffmpeg[%s] %s: %s", key, stream, text)


async def _drain(reader: Any, key: str, *, stream: str) -> None:
    """Log every line FFmpeg writes; problems at WARNING, progress at DEBUG.

    Progress reports end in ``\\r`` rather than ``\\n``, so the stream is read in
    chunks and split on either terminator.
    """

    if reader is None:
        return
    pending = b""
    while True:
        chunk = await reader.read(_READ_CHUNK)
        if not chunk:
            break
        *lines, pending = _LINE_BREAK.split(pending + chunk)
        for line in lines:
            _relay(line, key, stream)
        if len(pending) > _MAX_PENDING:
            _relay(pending, key, stream)
            pending = b""
    if pending:
        _relay(pending, key, stream)


__all__ = ["ProcessHandle", "ProcessSupervisor", "Spawner", "spawn_ffmpeg"]
