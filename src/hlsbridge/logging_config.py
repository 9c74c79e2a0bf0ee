"""Root logging setup for the bridge: one timestamped file per run plus stdout."""
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# FFmpeg stderr is relayed through this logger, one record per line.
FFMPEG_LOGGER = "hlsbridge.engine.supervisor.ffmpeg"

_LOG_FILE: Optional[Path] = None
_CONFIGURED = False


def _resolve_level(value: int | str | None, fallback: int) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        resolved = logging.getLevelName(value.strip().upper())
        if isinstance(resolved, int):
            return resolved
    return fallback


def _log_directory(log_dir: Optional[Path]) -> Path:
    if log_dir is not None:
        return Path(log_dir)
    env_dir = os.getenv("BRIDGE_LOG_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path(__file__).resolve().parents[2] / "logs"


def configure_logging(
    prefix: str,
    *,
    log_dir: Optional[Path] = None,
    level: int | str | None = None,
) -> Path:
    """Install the file and stdout handlers on the root logger once per process.

    ``level`` defaults to ``BRIDGE_LOG_LEVEL`` (INFO). FFmpeg output lines are
    DEBUG records; ``BRIDGE_FFMPEG_LOG_LEVEL`` lets them through without
    lowering everything else.
    """

    global _CONFIGURED, _LOG_FILE

    if _CONFIGURED and _LOG_FILE is not None:
        return _LOG_FILE

    directory = _log_directory(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_file = directory / f"{prefix}-{stamp}.log"

    root_level = _resolve_level(level if level is not None else os.getenv("BRIDGE_LOG_LEVEL"), logging.INFO)
    root = logging.getLogger()
    root.setLevel(root_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in (logging.FileHandler(log_file, encoding="utf-8"), logging.StreamHandler(sys.stdout)):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    ffmpeg_level = os.getenv("BRIDGE_FFMPEG_LOG_LEVEL")
    if ffmpeg_level:
        logging.getLogger(FFMPEG_LOGGER).setLevel(_resolve_level(ffmpeg_level, root_level))
    # werkzeug access lines are INFO records; only its warnings reach the log.
    logging.getLogger("werkzeug").setLevel(max(root_level, logging.WARNING))

    _CONFIGURED = True
    _LOG_FILE = log_file
    root.info("Logging to %s (level %s)", log_file, logging.getLevelName(root_level))
    return log_file


def current_log_file() -> Optional[Path]:
    """Return the log file chosen by :func:`configure_logging`, if any."""

    return _LOG_FILE


__all__ = ["FFMPEG_LOGGER", "configure_logging", "current_log_file"]
