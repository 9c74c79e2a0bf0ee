"""Configuration objects for the FFmpeg HLS command builders."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence


@dataclass(slots=True)
class OutputOptions:
    """Encode settings for the composite grid output."""

    width: int = 1280
    height: int = 720
    fps: int = 60
    gop_size: int = 120
    video_codec: str = "libx264"
    preset: str = "medium"
    crf: Optional[str] = "23"
    bitrate: str = "3M"
    bufsize: str = "4M"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    audio_sample_rate: int = 48000
    audio_channels: int = 2

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Output canvas must have a positive width and height")
        if self.fps <= 0:
            raise ValueError("Output frame rate must be positive")
        if self.gop_size <= 0:
            raise ValueError("GOP size must be positive")

    @property
    def keyframe_interval(self) -> float:
        """Seconds between forced keyframes (GOP / fps)."""

        return self.gop_size / self.fps


@dataclass(slots=True)
class SingleOutputOptions:
    """Low-latency encode settings used by per-producer sessions."""

    video_codec: str = "libx264"
    preset: str = "ultrafast"
    tune: Optional[str] = "zerolatency"
    profile: Optional[str] = "baseline"
    pix_fmt: Optional[str] = "yuv420p"
    gop_size: int = 30
    sc_threshold: int = 0
    bitrate: str = "500k"
    maxrate: str = "500k"
    bufsize: str = "1000k"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"


@dataclass(slots=True)
class HlsOptions:
    """Settings that control the HLS muxer."""

    segment_duration: float = 2.0
    list_size: int = 10
    segment_type: str = "mpegts"
    flags: Sequence[str] = field(
        default_factory=lambda: (
            "delete_segments",
            "omit_endlist",
            "program_date_time",
            "independent_segments",
        )
    )
    playlist_name: str = "playlist.m3u8"
    segment_prefix: str = "segment_"

    def __post_init__(self) -> None:
        if self.segment_type not in {"mpegts", "fmp4"}:
            raise ValueError(f"Unsupported HLS segment type: {self.segment_type}")
        if self.segment_duration <= 0:
            raise ValueError("HLS segment duration must be positive")
        self.list_size = max(1, int(self.list_size))
        self.flags = tuple(self.flags)

    @property
    def segment_extension(self) -> str:
        return "m4s" if self.segment_type == "fmp4" else "ts"

    @property
    def segment_pattern(self) -> str:
        return f"{self.segment_prefix}%03d.{self.segment_extension}"


@dataclass(slots=True)
class SyncOptions:
    """Audio/video synchronisation knobs for the composite mix."""

    audio_delay_ms: int = 0
    analyze_duration: int = 1_000_000
    probe_size: int = 1_000_000
    max_delay: int = 500_000


__all__ = ["HlsOptions", "OutputOptions", "SingleOutputOptions", "SyncOptions"]
