"""Bridge between an SFU media router and HLS output driven by FFmpeg."""
from __future__ import annotations

from .app import BridgeRuntime, create_app
from .engine.context import BridgeContext
from .exceptions import (
    BridgeError,
    DescriptorNotReadyError,
    NoUsableCodecError,
    PortPoolExhaustedError,
    TranscoderSpawnError,
)
from .settings import BridgeSettings, build_settings

__version__ = "0.1.0"

__all__ = [
    "BridgeContext",
    "BridgeError",
    "BridgeRuntime",
    "BridgeSettings",
    "DescriptorNotReadyError",
    "NoUsableCodecError",
    "PortPoolExhaustedError",
    "TranscoderSpawnError",
    "build_settings",
    "create_app",
]
