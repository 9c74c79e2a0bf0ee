"""FFmpeg argument vectors for the composite grid and per-producer HLS outputs."""
from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import List, Optional, Sequence

from .layout import Canvas, build_audio_mix, build_filter_complex
from .options import HlsOptions, OutputOptions, SingleOutputOptions, SyncOptions

LOGGER = logging.getLogger(__name__)

PROTOCOL_WHITELIST = "file,udp,rtp"
SINGLE_HLS_FLAGS = ("delete_segments", "append_list")


def sdp_input_args(path: Path | str, *, regenerate_timestamps: bool = False) -> List[str]:
    """Return the ``-i`` triple (whitelist, sdp format, path) for one descriptor."""

    args = ["-protocol_whitelist", PROTOCOL_WHITELIST]
    if regenerate_timestamps:
        args.extend(["-fflags", "+genpts+igndts", "-avoid_negative_ts", "make_zero"])
    args.extend(["-f", "sdp", "-i", str(path)])
    return args


def hls_output_args(
    output_dir: Path,
    hls: HlsOptions,
    *,
    flags: Optional[Sequence[str]] = None,
) -> List[str]:
    output_dir = Path(output_dir)
    args = [
        "-f", "hls",
        "-hls_time", _format_number(hls.segment_duration),
        "-hls_list_size", str(hls.list_size),
        "-hls_flags", "+".join(flags if flags is not None else hls.flags),
        "-hls_segment_type", hls.segment_type,
    ]
    if hls.segment_type == "fmp4":
        args.extend(["-hls_fmp4_init_filename", "init.mp4"])
    args.extend([
        "-start_number", "0",
        "-hls_segment_filename", str(output_dir / hls.segment_pattern),
        str(output_dir / hls.playlist_name),
    ])
    return args


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


class CompositeCommandBuilder:
    """Build the FFmpeg command that tiles N video inputs and mixes their audio."""

    def __init__(
        self,
        *,
        output_dir: Path,
        output: OutputOptions,
        hls: HlsOptions,
        sync: Optional[SyncOptions] = None,
        ffmpeg_binary: str = "ffmpeg",
    ) -> None:
        self.output_dir = Path(output_dir)
        self.output = output
        self.hls = hls
        self.sync = sync or SyncOptions()
        self.ffmpeg_binary = ffmpeg_binary

    @property
    def canvas(self) -> Canvas:
        return Canvas(self.output.width, self.output.height)

    def filter_complex(self, video_count: int, audio_count: int) -> str:
        expression = build_filter_complex(video_count, self.canvas, self.output.fps)
        if audio_count:
            expression += ";" + build_audio_mix(
                video_count,
                audio_count,
                delay_ms=self.sync.audio_delay_ms,
            )
        return expression

    def build_command(
        self,
        video_inputs: Sequence[Path],
        audio_inputs: Sequence[Path] = (),
    ) -> List[str]:
        if not video_inputs:
            raise ValueError("Composite output requires at least one video input")

        sync = self.sync
        cmd: List[str] = [
            self.ffmpeg_binary,
            "-nostats",
            "-analyzeduration", str(sync.analyze_duration),
            "-probesize", str(sync.probe_size),
            "-max_delay", str(sync.max_delay),
        ]
        for path in list(video_inputs) + list(audio_inputs):
            cmd.extend(sdp_input_args(path, regenerate_timestamps=True))

        cmd.extend(["-filter_complex", self.filter_complex(len(video_inputs), len(audio_inputs))])
        cmd.extend(["-map", "[v]"])
        if audio_inputs:
            cmd.extend(["-map", "[a]"])

        cmd.extend(self._video_args())
        if audio_inputs:
            cmd.extend(self._audio_args())
        cmd.extend(["-fps_mode", "cfr", "-copytb", "1", "-avoid_negative_ts", "make_zero"])
        cmd.extend(hls_output_args(self.output_dir, self.hls))
        return cmd

    def dry_run(self, video_inputs: Sequence[Path], audio_inputs: Sequence[Path] = ()) -> str:
        return shlex.join(self.build_command(video_inputs, audio_inputs))

    def _video_args(self) -> List[str]:
        opts = self.output
        args = ["-c:v", opts.video_codec, "-preset", opts.preset]
        if opts.crf:
            args.extend(["-crf", str(opts.crf)])
        args.extend([
            "-b:v", opts.bitrate,
            "-maxrate", opts.bitrate,
            "-bufsize", opts.bufsize,
            "-r", str(opts.fps),
            "-g", str(opts.gop_size),
            "-keyint_min", str(opts.gop_size),
            "-sc_threshold", "0",
            "-force_key_frames", f"expr:gte(t,n_forced*{_format_number(opts.keyframe_interval)})",
        ])
        return args

    def _audio_args(self) -> List[str]:
        opts = self.output
        return [
            "-c:a", opts.audio_codec,
            "-b:a", opts.audio_bitrate,
            "-ar", str(opts.audio_sample_rate),
            "-ac", str(opts.audio_channels),
        ]


class SingleCommandBuilder:
    """Build the FFmpeg command for one client's combined audio/video descriptor."""

    def __init__(
        self,
        *,
        output_dir: Path,
        options: Optional[SingleOutputOptions] = None,
        hls: Optional[HlsOptions] = None,
        ffmpeg_binary: str = "ffmpeg",
    ) -> None:
        self.output_dir = Path(output_dir)
        self.options = options or SingleOutputOptions()
        self.hls = hls or HlsOptions()
        self.ffmpeg_binary = ffmpeg_binary

    def build_command(self, descriptor: Path, *, has_video: bool, has_audio: bool) -> List[str]:
        if not has_video and not has_audio:
            raise ValueError("A per-producer output needs an audio or a video track")

        opts = self.options
        cmd: List[str] = [self.ffmpeg_binary, "-nostats"]
        cmd.extend(sdp_input_args(descriptor))
        if has_video:
            cmd.extend(["-c:v", opts.video_codec, "-preset", opts.preset])
            if opts.tune:
                cmd.extend(["-tune", opts.tune])
            if opts.profile:
                cmd.extend(["-profile:v", opts.profile])
            if opts.pix_fmt:
                cmd.extend(["-pix_fmt", opts.pix_fmt])
            cmd.extend([
                "-g", str(opts.gop_size),
                "-keyint_min", str(opts.gop_size),
                "-sc_threshold", str(opts.sc_threshold),
                "-b:v", opts.bitrate,
                "-maxrate", opts.maxrate,
                "-bufsize", opts.bufsize,
            ])
        if has_audio:
            cmd.extend(["-c:a", opts.audio_codec, "-b:a", opts.audio_bitrate])
        cmd.extend(hls_output_args(self.output_dir, self.hls, flags=SINGLE_HLS_FLAGS))
        return cmd

    def dry_run(self, descriptor: Path, *, has_video: bool, has_audio: bool) -> str:
        return shlex.join(self.build_command(descriptor, has_video=has_video, has_audio=has_audio))


__all__ = [
    "CompositeCommandBuilder",
    "PROTOCOL_WHITELIST",
    "SingleCommandBuilder",
    "hls_output_args",
    "sdp_input_args",
]
