"""Media description helpers: codecs, SDP descriptors, layouts and FFmpeg commands."""
from __future__ import annotations

from .codecs import (
    AacParams,
    CodecDescriptor,
    GenericParams,
    H264Params,
    MediaKind,
    VP8Params,
    select_codec,
)
from .command import CompositeCommandBuilder, SingleCommandBuilder
from .layout import Canvas, GridGeometry, build_audio_mix, build_filter_complex, grid_geometry
from .options import HlsOptions, OutputOptions, SingleOutputOptions, SyncOptions

__all__ = [
    "AacParams",
    "Canvas",
    "CodecDescriptor",
    "CompositeCommandBuilder",
    "GenericParams",
    "GridGeometry",
    "H264Params",
    "HlsOptions",
    "MediaKind",
    "OutputOptions",
    "SingleCommandBuilder",
    "SingleOutputOptions",
    "SyncOptions",
    "VP8Params",
    "build_audio_mix",
    "build_filter_complex",
    "grid_geometry",
    "select_codec",
]
