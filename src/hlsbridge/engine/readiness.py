"""Wait until FFmpeg input descriptors are on disk and carry usable dimensions."""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Iterable, List

from ..exceptions import DescriptorNotReadyError
from ..media.sdp import read_descriptor

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_INTERVAL = 0.15


def descriptor_ready(path: Path) -> bool:
    """Return ``True`` when ``path`` exists and, for video, names a non-zero frame size.

    Descriptors without a video media block only need to exist.
    """

    try:
        parsed = read_descriptor(path)
    except (FileNotFoundError, UnicodeDecodeError):
        return False
    except OSError as exc:
        LOGGER.debug("Unable to read descriptor %s: %s", path, exc)
        return False
    if not parsed.media:
        return False
    if not parsed.has_video:
        return True
    size = parsed.frame_size
    return bool(size and size[0] > 0 and size[1] > 0)


async def wait_for_descriptors(
    paths: Iterable[Path],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_INTERVAL,
) -> None:
    """Poll every ``interval`` seconds until all descriptors are ready.

    Raises :class:`DescriptorNotReadyError` naming the descriptors still
    pending once ``timeout`` elapses.
    """

    pending: List[Path] = [Path(path) for path in paths]
    deadline = time.monotonic() + timeout
    while True:
        pending = [path for path in pending if not descriptor_ready(path)]
        if not pending:
            return
        if time.monotonic() >= deadline:
            names = ", ".join(path.name for path in pending)
            raise DescriptorNotReadyError(f"Descriptors not ready after {timeout:.1f}s: {names}")
        await asyncio.sleep(interval)


__all__ = ["DEFAULT_INTERVAL", "DEFAULT_TIMEOUT", "descriptor_ready", "wait_for_descriptors"]
