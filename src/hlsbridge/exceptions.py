"""Custom exceptions raised by the bridge package."""
from __future__ import annotations


class BridgeError(RuntimeError):
    """Base error for the bridge package."""


class NoUsableCodecError(BridgeError):
    """Raised when a producer exposes no codec the transcoder can receive."""


class DescriptorNotReadyError(BridgeError):
    """Raised when SDP descriptors never become dimensionally valid."""


class TranscoderSpawnError(BridgeError):
    """Raised when the FFmpeg process cannot be launched."""


class PortPoolExhaustedError(BridgeError):
    """Raised when no free RTP/RTCP port pair is left in the pool."""
