"""Configuration helpers for the bridge service."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv

from .utils import coerce_float, coerce_int, to_bool

_dotenv_path = find_dotenv(usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path, override=False)
del _dotenv_path

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, fallback: str) -> str:
    value = os.getenv(name)
    if value is None:
        return fallback
    trimmed = value.strip()
    return trimmed or fallback


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def _env_bool(name: str, fallback: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return fallback
    return to_bool(value)


DEFAULT_OUTPUT_ROOT = _env_str("BRIDGE_OUTPUT_ROOT", str(Path.cwd() / "hls"))
DEFAULT_LISTEN_IP = _env_str("BRIDGE_LISTEN_IP", "127.0.0.1")
DEFAULT_FFMPEG_BINARY = _env_str("BRIDGE_FFMPEG_BINARY", "ffmpeg")

DEFAULT_PORT_RANGE_START = coerce_int(os.getenv("BRIDGE_PORT_RANGE_START"), 20000)
DEFAULT_PORT_RANGE_END = coerce_int(os.getenv("BRIDGE_PORT_RANGE_END"), 30000)

DEFAULT_MAX_PARTICIPANTS = coerce_int(os.getenv("BRIDGE_MAX_PARTICIPANTS"), 16)
DEFAULT_OUTPUT_WIDTH = coerce_int(os.getenv("BRIDGE_OUTPUT_WIDTH"), 1280)
DEFAULT_OUTPUT_HEIGHT = coerce_int(os.getenv("BRIDGE_OUTPUT_HEIGHT"), 720)
DEFAULT_OUTPUT_FPS = coerce_int(os.getenv("BRIDGE_OUTPUT_FPS"), 60)
DEFAULT_OUTPUT_GOP = coerce_int(os.getenv("BRIDGE_OUTPUT_GOP"), 120)
DEFAULT_OUTPUT_BITRATE = _env_str("BRIDGE_OUTPUT_BITRATE", "3M")
DEFAULT_OUTPUT_BUFSIZE = _env_str("BRIDGE_OUTPUT_BUFSIZE", "4M")
DEFAULT_OUTPUT_CRF = _env_str("BRIDGE_OUTPUT_CRF", "23")
DEFAULT_OUTPUT_PRESET = _env_str("BRIDGE_OUTPUT_PRESET", "medium")

DEFAULT_HLS_TIME = coerce_float(os.getenv("BRIDGE_HLS_TIME"), 2.0)
DEFAULT_HLS_LIST_SIZE = coerce_int(os.getenv("BRIDGE_HLS_LIST_SIZE"), 10)
DEFAULT_HLS_SEGMENT_TYPE = _env_str("BRIDGE_HLS_SEGMENT_TYPE", "mpegts")

DEFAULT_AUDIO_DELAY_MS = coerce_int(os.getenv("BRIDGE_AUDIO_DELAY_MS"), 0)

DEFAULT_PUBLISH_INTERVAL = coerce_float(os.getenv("BRIDGE_PUBLISH_INTERVAL"), 1.0)
DEFAULT_PUBLISH_FRESHNESS = coerce_float(os.getenv("BRIDGE_PUBLISH_FRESHNESS"), 10.0)
DEFAULT_READINESS_TIMEOUT = coerce_float(os.getenv("BRIDGE_READINESS_TIMEOUT"), 10.0)
DEFAULT_READINESS_INTERVAL = coerce_float(os.getenv("BRIDGE_READINESS_INTERVAL"), 0.15)
DEFAULT_RETRY_DELAY = coerce_float(os.getenv("BRIDGE_RETRY_DELAY"), 2.0)

DEFAULT_PER_PRODUCER_ENABLED = _env_bool("BRIDGE_PER_PRODUCER_ENABLED", True)
DEFAULT_COMPOSITE_ENABLED = _env_bool("BRIDGE_COMPOSITE_ENABLED", True)

DEFAULT_CORS_ORIGIN = _env_str("BRIDGE_CORS_ORIGIN", "*")
DEFAULT_MEDIA_ENDPOINT_ENABLED = _env_bool("BRIDGE_MEDIA_ENDPOINT_ENABLED", True)

DEFAULT_STATUS_REDIS_URL = _env_optional("BRIDGE_STATUS_REDIS_URL") or _env_optional("REDIS_URL")
DEFAULT_STATUS_PREFIX = _env_str("BRIDGE_STATUS_PREFIX", "bridge")
DEFAULT_STATUS_NAMESPACE = _env_str("BRIDGE_STATUS_NAMESPACE", "hls")
DEFAULT_STATUS_KEY = _env_str("BRIDGE_STATUS_KEY", "status")
DEFAULT_STATUS_CHANNEL = _env_optional("BRIDGE_STATUS_CHANNEL") or "bridge:hls:status"
DEFAULT_STATUS_TTL_SECONDS = coerce_int(os.getenv("BRIDGE_STATUS_TTL_SECONDS"), 30)
DEFAULT_STATUS_HEARTBEAT_SECONDS = coerce_int(os.getenv("BRIDGE_STATUS_HEARTBEAT_SECONDS"), 5)


def build_default_config() -> Dict[str, Any]:
    """Return the base configuration mapping for the service."""

    cfg: Dict[str, Any] = {
        "BRIDGE_OUTPUT_ROOT": DEFAULT_OUTPUT_ROOT,
        "BRIDGE_LISTEN_IP": DEFAULT_LISTEN_IP,
        "BRIDGE_FFMPEG_BINARY": DEFAULT_FFMPEG_BINARY,
        "BRIDGE_PORT_RANGE_START": DEFAULT_PORT_RANGE_START,
        "BRIDGE_PORT_RANGE_END": DEFAULT_PORT_RANGE_END,
        "BRIDGE_MAX_PARTICIPANTS": DEFAULT_MAX_PARTICIPANTS,
        "BRIDGE_OUTPUT_WIDTH": DEFAULT_OUTPUT_WIDTH,
        "BRIDGE_OUTPUT_HEIGHT": DEFAULT_OUTPUT_HEIGHT,
        "BRIDGE_OUTPUT_FPS": DEFAULT_OUTPUT_FPS,
        "BRIDGE_OUTPUT_GOP": DEFAULT_OUTPUT_GOP,
        "BRIDGE_OUTPUT_BITRATE": DEFAULT_OUTPUT_BITRATE,
        "BRIDGE_OUTPUT_BUFSIZE": DEFAULT_OUTPUT_BUFSIZE,
        "BRIDGE_OUTPUT_CRF": DEFAULT_OUTPUT_CRF,
        "BRIDGE_OUTPUT_PRESET": DEFAULT_OUTPUT_PRESET,
        "BRIDGE_HLS_TIME": DEFAULT_HLS_TIME,
        "BRIDGE_HLS_LIST_SIZE": DEFAULT_HLS_LIST_SIZE,
        "BRIDGE_HLS_SEGMENT_TYPE": DEFAULT_HLS_SEGMENT_TYPE,
        "BRIDGE_AUDIO_DELAY_MS": DEFAULT_AUDIO_DELAY_MS,
        "BRIDGE_PUBLISH_INTERVAL": DEFAULT_PUBLISH_INTERVAL,
        "BRIDGE_PUBLISH_FRESHNESS": DEFAULT_PUBLISH_FRESHNESS,
        "BRIDGE_READINESS_TIMEOUT": DEFAULT_READINESS_TIMEOUT,
        "BRIDGE_READINESS_INTERVAL": DEFAULT_READINESS_INTERVAL,
        "BRIDGE_RETRY_DELAY": DEFAULT_RETRY_DELAY,
        "BRIDGE_PER_PRODUCER_ENABLED": DEFAULT_PER_PRODUCER_ENABLED,
        "BRIDGE_COMPOSITE_ENABLED": DEFAULT_COMPOSITE_ENABLED,
        "BRIDGE_CORS_ORIGIN": DEFAULT_CORS_ORIGIN,
        "BRIDGE_MEDIA_ENDPOINT_ENABLED": DEFAULT_MEDIA_ENDPOINT_ENABLED,
        "BRIDGE_STATUS_REDIS_URL": DEFAULT_STATUS_REDIS_URL,
        "BRIDGE_STATUS_PREFIX": DEFAULT_STATUS_PREFIX,
        "BRIDGE_STATUS_NAMESPACE": DEFAULT_STATUS_NAMESPACE,
        "BRIDGE_STATUS_KEY": DEFAULT_STATUS_KEY,
        "BRIDGE_STATUS_CHANNEL": DEFAULT_STATUS_CHANNEL,
        "BRIDGE_STATUS_TTL_SECONDS": DEFAULT_STATUS_TTL_SECONDS,
        "BRIDGE_STATUS_HEARTBEAT_SECONDS": DEFAULT_STATUS_HEARTBEAT_SECONDS,
    }
    return cfg


__all__ = ["build_default_config", "PROJECT_ROOT"]
