"""Codec metadata negotiated by the media router, modelled as immutable values."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union

from ..exceptions import NoUsableCodecError


class MediaKind(str, Enum):
    """Track kinds the bridge knows how to relay."""

    AUDIO = "audio"
    VIDEO = "video"

    @classmethod
    def parse(cls, value: Any) -> "MediaKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported media kind: {value!r}") from exc


@dataclass(frozen=True, slots=True)
class H264Params:
    packetization_mode: Optional[int] = None
    profile_level_id: Optional[str] = None

    def fmtp_pairs(self) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        if self.packetization_mode is not None:
            pairs.append(("packetization-mode", str(self.packetization_mode)))
        if self.profile_level_id:
            pairs.append(("profile-level-id", self.profile_level_id))
        return pairs


@dataclass(frozen=True, slots=True)
class VP8Params:
    max_fr: Optional[int] = None
    max_fs: Optional[int] = None

    def fmtp_pairs(self) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        if self.max_fr is not None:
            pairs.append(("max-fr", str(self.max_fr)))
        if self.max_fs is not None:
            pairs.append(("max-fs", str(self.max_fs)))
        return pairs


@dataclass(frozen=True, slots=True)
class AacParams:
    profile_level_id: Optional[str] = None

    def fmtp_pairs(self) -> list[tuple[str, str]]:
        if self.profile_level_id:
            return [("profile-level-id", self.profile_level_id)]
        return []


@dataclass(frozen=True, slots=True)
class GenericParams:
    """Parameters of codecs that do not need an fmtp line."""

    items: Tuple[Tuple[str, str], ...] = ()

    def fmtp_pairs(self) -> list[tuple[str, str]]:
        return []

    def get(self, key: str) -> Optional[str]:
        for name, value in self.items:
            if name == key:
                return value
        return None


CodecParams = Union[H264Params, VP8Params, AacParams, GenericParams]

# MIME subtype -> SDP encoding name. Unknown subtypes fall back to ``subtype.upper()``.
CODEC_NAMES: Mapping[str, str] = {
    "vp8": "VP8",
    "vp9": "VP9",
    "h264": "H264",
    "opus": "OPUS",
    "aac": "MPEG4-GENERIC",
    "mpeg4-generic": "MPEG4-GENERIC",
}


def mime_subtype(mime_type: str) -> str:
    _, _, subtype = mime_type.partition("/")
    return subtype or mime_type


def codec_name_for(mime_type: str) -> str:
    """Return the SDP encoding name used in ``a=rtpmap`` for ``mime_type``."""

    subtype = mime_subtype(mime_type)
    return CODEC_NAMES.get(subtype.lower(), subtype.upper())


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_params(mime_type: str, parameters: Optional[Mapping[str, Any]]) -> CodecParams:
    """Map a loosely-typed router parameter dict onto a codec-family variant."""

    raw = dict(parameters or {})
    subtype = mime_subtype(mime_type).lower()
    if subtype == "h264":
        profile = raw.get("profile-level-id")
        return H264Params(
            packetization_mode=_optional_int(raw.get("packetization-mode")),
            profile_level_id=str(profile) if profile not in (None, "") else None,
        )
    if subtype == "vp8":
        return VP8Params(
            max_fr=_optional_int(raw.get("max-fr")),
            max_fs=_optional_int(raw.get("max-fs")),
        )
    if subtype in {"aac", "mpeg4-generic"}:
        profile = raw.get("profile-level-id")
        return AacParams(profile_level_id=str(profile) if profile not in (None, "") else None)
    return GenericParams(items=tuple(sorted((str(key), str(value)) for key, value in raw.items())))


@dataclass(frozen=True, slots=True)
class CodecDescriptor:
    """Negotiated codec of one relayed track."""

    kind: MediaKind
    mime_type: str
    clock_rate: int
    payload_type: int
    channels: Optional[int] = None
    params: CodecParams = GenericParams()

    @property
    def codec_name(self) -> str:
        return codec_name_for(self.mime_type)

    @property
    def subtype(self) -> str:
        return mime_subtype(self.mime_type).lower()

    def with_payload_type(self, payload_type: int) -> "CodecDescriptor":
        return CodecDescriptor(
            kind=self.kind,
            mime_type=self.mime_type,
            clock_rate=self.clock_rate,
            payload_type=int(payload_type),
            channels=self.channels,
            params=self.params,
        )

    def with_params(self, params: CodecParams) -> "CodecDescriptor":
        return CodecDescriptor(
            kind=self.kind,
            mime_type=self.mime_type,
            clock_rate=self.clock_rate,
            payload_type=self.payload_type,
            channels=self.channels,
            params=params,
        )

    @classmethod
    def from_rtp_codec(cls, kind: MediaKind | str, codec: Mapping[str, Any]) -> "CodecDescriptor":
        """Build a descriptor from a router ``rtpParameters.codecs`` entry."""

        mime_type = str(codec.get("mimeType") or "")
        if "/" not in mime_type:
            raise NoUsableCodecError(f"Codec entry has no usable mimeType: {codec!r}")
        payload_type = codec.get("payloadType", codec.get("preferredPayloadType"))
        if payload_type is None:
            raise NoUsableCodecError(f"Codec {mime_type} has no payload type")
        return cls(
            kind=MediaKind.parse(kind),
            mime_type=mime_type,
            clock_rate=int(codec.get("clockRate") or 0),
            payload_type=int(payload_type),
            channels=_optional_int(codec.get("channels")),
            params=build_params(mime_type, codec.get("parameters")),
        )

    def to_capability(self) -> dict[str, Any]:
        """Return a router RTP capability entry that only accepts this codec."""

        parameters: dict[str, Any] = {}
        if isinstance(self.params, GenericParams):
            parameters.update(dict(self.params.items))
        else:
            parameters.update(dict(self.params.fmtp_pairs()))
        capability: dict[str, Any] = {
            "kind": self.kind.value,
            "mimeType": self.mime_type,
            "clockRate": self.clock_rate,
            "preferredPayloadType": self.payload_type,
            "parameters": parameters,
            "rtcpFeedback": [],
        }
        if self.channels is not None:
            capability["channels"] = self.channels
        return capability


VIDEO_PREFERENCE: Tuple[str, ...] = ("h264", "vp8")
AUDIO_PREFERENCE: Tuple[str, ...] = ("opus",)


def select_codec(
    kind: MediaKind | str,
    codecs: Iterable[Mapping[str, Any]],
    preference: Optional[Sequence[str]] = None,
) -> CodecDescriptor:
    """Pick the preferred codec from a producer's negotiated list.

    Raises :class:`NoUsableCodecError` when the list is empty.
    """

    media_kind = MediaKind.parse(kind)
    entries = [entry for entry in codecs if isinstance(entry, Mapping)]
    if not entries:
        raise NoUsableCodecError(f"No {media_kind.value} codecs negotiated")
    if preference is None:
        preference = VIDEO_PREFERENCE if media_kind is MediaKind.VIDEO else AUDIO_PREFERENCE
    for wanted in preference:
        for entry in entries:
            if wanted in str(entry.get("mimeType", "")).lower():
                return CodecDescriptor.from_rtp_codec(media_kind, entry)
    return CodecDescriptor.from_rtp_codec(media_kind, entries[0])


__all__ = [
    "AacParams",
    "AUDIO_PREFERENCE",
    "CODEC_NAMES",
    "CodecDescriptor",
    "CodecParams",
    "GenericParams",
    "H264Params",
    "MediaKind",
    "VIDEO_PREFERENCE",
    "VP8Params",
    "build_params",
    "codec_name_for",
    "mime_subtype",
    "select_codec",
]
