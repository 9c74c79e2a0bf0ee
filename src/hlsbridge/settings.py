"""Build typed BridgeSettings from the flat configuration mapping."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from .config import build_default_config
from .media.options import HlsOptions, OutputOptions, SingleOutputOptions, SyncOptions
from .utils import coerce_float, coerce_int, to_bool, to_optional_str

__all__ = ["BridgeSettings", "StatusOptions", "TimingOptions", "build_settings"]


@dataclass(slots=True)
class TimingOptions:
    """Intervals and deadlines used by the orchestration layer."""

    publish_interval: float = 1.0
    publish_freshness: float = 10.0
    readiness_timeout: float = 10.0
    readiness_interval: float = 0.15
    retry_delay: float = 2.0


@dataclass(slots=True)
class StatusOptions:
    redis_url: Optional[str] = None
    prefix: str = "bridge"
    namespace: str = "hls"
    key: str = "status"
    channel: Optional[str] = "bridge:hls:status"
    ttl_seconds: int = 30
    heartbeat_seconds: int = 5


@dataclass(slots=True)
class BridgeSettings:
    output_root: Path
    listen_ip: str = "127.0.0.1"
    ffmpeg_binary: str = "ffmpeg"
    port_range_start: int = 20000
    port_range_end: int = 30000
    max_participants: int = 16
    output: OutputOptions = field(default_factory=OutputOptions)
    single: SingleOutputOptions = field(default_factory=SingleOutputOptions)
    hls: HlsOptions = field(default_factory=HlsOptions)
    single_hls: HlsOptions = field(
        default_factory=lambda: HlsOptions(list_size=5, flags=("delete_segments", "append_list"))
    )
    sync: SyncOptions = field(default_factory=SyncOptions)
    timing: TimingOptions = field(default_factory=TimingOptions)
    status: StatusOptions = field(default_factory=StatusOptions)
    per_producer_enabled: bool = True
    composite_enabled: bool = True

    def __post_init__(self) -> None:
        self.output_root = Path(self.output_root).expanduser()
        self.validate()

    def validate(self) -> None:
        if self.port_range_end <= self.port_range_start + 1:
            raise ValueError(
                f"Port range {self.port_range_start}-{self.port_range_end} holds no RTP/RTCP pair"
            )
        if self.max_participants < 1:
            raise ValueError("max_participants must be at least 1")
        segment = min(self.hls.segment_duration, self.single_hls.segment_duration)
        if self.timing.publish_interval >= segment:
            raise ValueError(
                f"Publish interval ({self.timing.publish_interval}s) must be shorter than "
                f"the HLS segment duration ({segment}s)"
            )
        if self.timing.readiness_interval <= 0 or self.timing.readiness_timeout <= 0:
            raise ValueError("Readiness interval and timeout must be positive")

    @property
    def composite_key(self) -> str:
        return "combined-stream"

    @property
    def live_dir(self) -> Path:
        return self.output_root / "live"

    @property
    def combined_dir(self) -> Path:
        return self.output_root / "combined"


def _options_from_mapping(cls, override: Any) -> Any:
    if not isinstance(override, Mapping):
        return cls()
    valid = {item.name for item in fields(cls)}
    filtered = {
        key: value
        for key, value in override.items()
        if key in valid and not (isinstance(value, str) and value.strip() == "")
    }
    return cls(**filtered)


def build_settings(
    config: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> BridgeSettings:
    """Return BridgeSettings from a ``BRIDGE_*`` mapping plus nested overrides.

    ``config`` defaults to :func:`build_default_config`. ``overrides`` may carry
    ``output``/``hls``/``sync``/``timing`` sub-mappings whose keys match the
    option dataclasses.
    """

    cfg = dict(build_default_config())
    if config:
        cfg.update(config)
    overrides = overrides or {}

    output = OutputOptions(
        width=coerce_int(cfg.get("BRIDGE_OUTPUT_WIDTH"), 1280),
        height=coerce_int(cfg.get("BRIDGE_OUTPUT_HEIGHT"), 720),
        fps=coerce_int(cfg.get("BRIDGE_OUTPUT_FPS"), 60),
        gop_size=coerce_int(cfg.get("BRIDGE_OUTPUT_GOP"), 120),
        preset=to_optional_str(cfg.get("BRIDGE_OUTPUT_PRESET")) or "medium",
        crf=to_optional_str(cfg.get("BRIDGE_OUTPUT_CRF")),
        bitrate=to_optional_str(cfg.get("BRIDGE_OUTPUT_BITRATE")) or "3M",
        bufsize=to_optional_str(cfg.get("BRIDGE_OUTPUT_BUFSIZE")) or "4M",
    )
    if isinstance(overrides.get("output"), Mapping):
        output = _options_from_mapping(OutputOptions, overrides["output"])

    hls = HlsOptions(
        segment_duration=coerce_float(cfg.get("BRIDGE_HLS_TIME"), 2.0),
        list_size=coerce_int(cfg.get("BRIDGE_HLS_LIST_SIZE"), 10),
        segment_type=to_optional_str(cfg.get("BRIDGE_HLS_SEGMENT_TYPE")) or "mpegts",
    )
    if isinstance(overrides.get("hls"), Mapping):
        hls = _options_from_mapping(HlsOptions, overrides["hls"])

    sync = SyncOptions(audio_delay_ms=max(0, coerce_int(cfg.get("BRIDGE_AUDIO_DELAY_MS"), 0)))
    if isinstance(overrides.get("sync"), Mapping):
        sync = _options_from_mapping(SyncOptions, overrides["sync"])

    timing = TimingOptions(
        publish_interval=coerce_float(cfg.get("BRIDGE_PUBLISH_INTERVAL"), 1.0),
        publish_freshness=coerce_float(cfg.get("BRIDGE_PUBLISH_FRESHNESS"), 10.0),
        readiness_timeout=coerce_float(cfg.get("BRIDGE_READINESS_TIMEOUT"), 10.0),
        readiness_interval=coerce_float(cfg.get("BRIDGE_READINESS_INTERVAL"), 0.15),
        retry_delay=coerce_float(cfg.get("BRIDGE_RETRY_DELAY"), 2.0),
    )
    if isinstance(overrides.get("timing"), Mapping):
        timing = _options_from_mapping(TimingOptions, overrides["timing"])

    status = StatusOptions(
        redis_url=to_optional_str(cfg.get("BRIDGE_STATUS_REDIS_URL")),
        prefix=to_optional_str(cfg.get("BRIDGE_STATUS_PREFIX")) or "bridge",
        namespace=to_optional_str(cfg.get("BRIDGE_STATUS_NAMESPACE")) or "hls",
        key=to_optional_str(cfg.get("BRIDGE_STATUS_KEY")) or "status",
        channel=to_optional_str(cfg.get("BRIDGE_STATUS_CHANNEL")),
        ttl_seconds=coerce_int(cfg.get("BRIDGE_STATUS_TTL_SECONDS"), 30),
        heartbeat_seconds=coerce_int(cfg.get("BRIDGE_STATUS_HEARTBEAT_SECONDS"), 5),
    )

    return BridgeSettings(
        output_root=Path(str(cfg.get("BRIDGE_OUTPUT_ROOT") or "hls")),
        listen_ip=to_optional_str(cfg.get("BRIDGE_LISTEN_IP")) or "127.0.0.1",
        ffmpeg_binary=to_optional_str(cfg.get("BRIDGE_FFMPEG_BINARY")) or "ffmpeg",
        port_range_start=coerce_int(cfg.get("BRIDGE_PORT_RANGE_START"), 20000),
        port_range_end=coerce_int(cfg.get("BRIDGE_PORT_RANGE_END"), 30000),
        max_participants=coerce_int(cfg.get("BRIDGE_MAX_PARTICIPANTS"), 16),
        output=output,
        hls=hls,
        sync=sync,
        timing=timing,
        status=status,
        per_producer_enabled=to_bool(cfg.get("BRIDGE_PER_PRODUCER_ENABLED", True)),
        composite_enabled=to_bool(cfg.get("BRIDGE_COMPOSITE_ENABLED", True)),
    )
