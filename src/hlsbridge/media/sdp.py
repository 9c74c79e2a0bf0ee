"""SDP descriptor synthesis for plain-RTP relay endpoints.

FFmpeg reads these files (``-f sdp -i <path>``) to learn which local ports the
router pushes each track to and how the payload is encoded. Every file holds
one session header followed by one or more media blocks, ``\\r\\n`` terminated.
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

from .codecs import CodecDescriptor, MediaKind

LOGGER = logging.getLogger(__name__)

CRLF = "\r\n"
DEFAULT_ADDRESS = "127.0.0.1"
SESSION_NAME = "mediasoup"

_FRAMESIZE_RE = re.compile(r"^a=framesize:(?:\d+\s+)?(\d+)[-x\s](\d+)\s*$", re.MULTILINE)
_MEDIA_SIZE_RE = re.compile(r"^m=video \d+ [^ ]+ (\d+) (\d+)\s*$", re.MULTILINE)
_MEDIA_RE = re.compile(r"^m=(\w+) (\d+) ([^ ]+) (\d+)")
_RTPMAP_RE = re.compile(r"^a=rtpmap:(\d+) ([^/\s]+)/(\d+)(?:/(\d+))?")
_FMTP_RE = re.compile(r"^a=fmtp:(\d+) (.+)$")
_RTCP_RE = re.compile(r"^a=rtcp:(\d+)")
_CONNECTION_RE = re.compile(r"^c=IN IP4 (\S+)")


def session_header(address: str = DEFAULT_ADDRESS) -> str:
    lines = [
        "v=0",
        f"o=- 0 0 IN IP4 {address}",
        f"s={SESSION_NAME}",
        f"c=IN IP4 {address}",
        "t=0 0",
    ]
    return CRLF.join(lines) + CRLF


def media_block(
    codec: CodecDescriptor,
    payload_type: int,
    rtp_port: int,
    rtcp_port: int,
    *,
    extra_attributes: Sequence[str] = (),
) -> str:
    """Return the ``m=`` block describing one relayed track."""

    rtpmap = f"a=rtpmap:{payload_type} {codec.codec_name}/{codec.clock_rate}"
    if codec.kind is MediaKind.AUDIO:
        rtpmap += f"/{codec.channels or 2}"

    lines = [f"m={codec.kind.value} {rtp_port} RTP/AVP {payload_type}", rtpmap]
    fmtp_pairs = codec.params.fmtp_pairs()
    if fmtp_pairs:
        joined = ";".join(f"{key}={value}" for key, value in fmtp_pairs)
        lines.append(f"a=fmtp:{payload_type} {joined}")
    lines.extend(extra_attributes)
    lines.append("a=sendonly")
    lines.append(f"a=rtcp:{rtcp_port}")
    return CRLF.join(lines) + CRLF


def build_descriptor(blocks: Iterable[str], *, address: str = DEFAULT_ADDRESS) -> str:
    return session_header(address) + "".join(blocks)


def framesize_attribute(payload_type: int, width: int, height: int) -> str:
    return f"a=framesize:{payload_type} {width}-{height}"


def framerate_attribute(fps: int) -> str:
    return f"a=framerate:{fps}"


def ssrc_attribute(ssrc: int, cname: str) -> str:
    return f"a=ssrc:{ssrc} cname:{cname}"


def write_descriptor(path: Path, content: str) -> Path:
    """Replace ``path`` with ``content`` atomically."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        tmp_path.replace(target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    LOGGER.debug("Wrote SDP descriptor %s (%d bytes)", target, len(content))
    return target


@dataclass(frozen=True)
class MediaDescription:
    kind: str
    port: int
    protocol: str
    payload_type: int
    codec_name: Optional[str] = None
    clock_rate: Optional[int] = None
    channels: Optional[int] = None
    rtcp_port: Optional[int] = None
    fmtp: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class ParsedDescriptor:
    address: Optional[str]
    media: Tuple[MediaDescription, ...] = field(default_factory=tuple)
    frame_size: Optional[Tuple[int, int]] = None

    @property
    def has_video(self) -> bool:
        return any(entry.kind == MediaKind.VIDEO.value for entry in self.media)


def parse_frame_size(text: str) -> Optional[Tuple[int, int]]:
    """Extract width/height from a framesize annotation or the video media line."""

    match = _FRAMESIZE_RE.search(text) or _MEDIA_SIZE_RE.search(text)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def parse_descriptor(text: str) -> ParsedDescriptor:
    address: Optional[str] = None
    entries: list[dict] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        connection = _CONNECTION_RE.match(line)
        if connection and address is None:
            address = connection.group(1)
            continue
        media = _MEDIA_RE.match(line)
        if media:
            entries.append(
                {
                    "kind": media.group(1),
                    "port": int(media.group(2)),
                    "protocol": media.group(3),
                    "payload_type": int(media.group(4)),
                    "fmtp": (),
                }
            )
            continue
        if not entries:
            continue
        current = entries[-1]
        rtpmap = _RTPMAP_RE.match(line)
        if rtpmap and int(rtpmap.group(1)) == current["payload_type"]:
            current["codec_name"] = rtpmap.group(2)
            current["clock_rate"] = int(rtpmap.group(3))
            if rtpmap.group(4):
                current["channels"] = int(rtpmap.group(4))
            continue
        fmtp = _FMTP_RE.match(line)
        if fmtp and int(fmtp.group(1)) == current["payload_type"]:
            pairs = []
            for chunk in fmtp.group(2).split(";"):
                key, sep, value = chunk.strip().partition("=")
                if sep:
                    pairs.append((key.strip(), value.strip()))
            current["fmtp"] = current["fmtp"] + tuple(pairs)
            continue
        rtcp = _RTCP_RE.match(line)
        if rtcp:
            current["rtcp_port"] = int(rtcp.group(1))
    return ParsedDescriptor(
        address=address,
        media=tuple(MediaDescription(**entry) for entry in entries),
        frame_size=parse_frame_size(text),
    )


def read_descriptor(path: Path) -> ParsedDescriptor:
    return parse_descriptor(Path(path).read_text(encoding="utf-8"))


__all__ = [
    "CRLF",
    "DEFAULT_ADDRESS",
    "MediaDescription",
    "ParsedDescriptor",
    "build_descriptor",
    "framerate_attribute",
    "framesize_attribute",
    "media_block",
    "parse_descriptor",
    "parse_frame_size",
    "read_descriptor",
    "session_header",
    "ssrc_attribute",
    "write_descriptor",
]
