"""Mirror an FFmpeg HLS output directory to a stable publish location."""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..engine.timers import PeriodicTask

LOGGER = logging.getLogger(__name__)

SEGMENT_SUFFIXES = (".ts", ".m4s")
INIT_SEGMENT_NAME = "init.mp4"


@dataclass(frozen=True)
class PublishResult:
    published: bool
    copied: int = 0
    removed: int = 0
    reason: Optional[str] = None


class PublishLoop:
    """Copy segments and then the playlist from ``source_dir`` into ``target_dir``.

    Segments go first so a published playlist never names a segment the target
    does not hold yet. The playlist is replaced through a temp file + rename.
    """

    def __init__(
        self,
        source_dir: Path,
        target_dir: Path,
        *,
        interval: float = 1.0,
        freshness_window: Optional[float] = None,
        touch_target: bool = False,
        playlist_name: str = "playlist.m3u8",
    ) -> None:
        self.source_dir = Path(source_dir)
        self.target_dir = Path(target_dir)
        self.interval = float(interval)
        self.freshness_window = freshness_window
        self.touch_target = touch_target
        self.playlist_name = playlist_name
        self._timer = PeriodicTask(
            self.interval,
            self._tick,
            name=f"publish:{self.source_dir.name}->{self.target_dir.name}",
            run_immediately=True,
        )
        self._last_result: Optional[PublishResult] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        LOGGER.info("Publishing %s to %s every %.2fs", self.source_dir, self.target_dir, self.interval)
        self._timer.start()

    def stop(self) -> None:
        if self._timer.running():
            LOGGER.info("Stopped publishing %s", self.source_dir)
        self._timer.stop()

    def running(self) -> bool:
        return self._timer.running()

    @property
    def last_result(self) -> Optional[PublishResult]:
        return self._last_result

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def publish_once(self) -> PublishResult:
        result = self._publish()
        self._last_result = result
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _tick(self) -> None:
        # File copies run on a worker thread, off the event loop.
        await asyncio.to_thread(self.publish_once)

    def _publish(self) -> PublishResult:
        source_playlist = self.source_dir / self.playlist_name
        if not source_playlist.is_file():
            return PublishResult(False, reason="playlist missing")

        if self.freshness_window is not None:
            age = time.time() - source_playlist.stat().st_mtime
            if age > self.freshness_window:
                LOGGER.debug("Skipping stale playlist %s (%.1fs old)", source_playlist, age)
                return PublishResult(False, reason="stale")

        self.target_dir.mkdir(parents=True, exist_ok=True)
        source_segments = {path.name: path for path in self.source_dir.iterdir() if _is_segment(path)}

        copied = 0
        for name, path in sorted(source_segments.items()):
            if _copy_if_changed(path, self.target_dir / name):
                copied += 1

        removed = 0
        for stale in self.target_dir.iterdir():
            if _is_segment(stale) and stale.name not in source_segments:
                try:
                    stale.unlink()
                    removed += 1
                except FileNotFoundError:
                    continue

        target_playlist = self.target_dir / self.playlist_name
        _replace_file(source_playlist, target_playlist)
        if self.touch_target:
            os.utime(target_playlist, None)
        return PublishResult(True, copied=copied, removed=removed)


def _is_segment(path: Path) -> bool:
    if not path.is_file():
        return False
    return path.suffix in SEGMENT_SUFFIXES or path.name == INIT_SEGMENT_NAME


def _copy_if_changed(source: Path, target: Path) -> bool:
    try:
        source_stat = source.stat()
    except FileNotFoundError:
        return False
    try:
        target_stat = target.stat()
    except FileNotFoundError:
        target_stat = None
    if (
        target_stat is not None
        and target_stat.st_size == source_stat.st_size
        and target_stat.st_mtime >= source_stat.st_mtime
    ):
        return False
    shutil.copy2(source, target)
    return True


def _replace_file(source: Path, target: Path) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        shutil.copyfile(source, tmp_path)
        tmp_path.replace(target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


__all__ = ["PublishLoop", "PublishResult"]
