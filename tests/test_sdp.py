from pathlib import Path

from hlsbridge.media.codecs import (
    AacParams,
    CodecDescriptor,
    GenericParams,
    H264Params,
    MediaKind,
    VP8Params,
)
from hlsbridge.media.sdp import (
    build_descriptor,
    framerate_attribute,
    framesize_attribute,
    media_block,
    parse_frame_size,
    read_descriptor,
    session_header,
    ssrc_attribute,
    write_descriptor,
)

OPUS = CodecDescriptor(MediaKind.AUDIO, "audio/opus", 48000, 111, channels=2)
VP8 = CodecDescriptor(MediaKind.VIDEO, "video/VP8", 90000, 96, params=VP8Params())


def test_session_header_lines() -> None:
    assert session_header("127.0.0.1") == (
        "v=0\r\n"
        "o=- 0 0 IN IP4 127.0.0.1\r\n"
        "s=mediasoup\r\n"
        "c=IN IP4 127.0.0.1\r\n"
        "t=0 0\r\n"
    )


def test_audio_block_carries_channels() -> None:
    block = media_block(OPUS, 111, 20000, 20001)

    assert block == (
        "m=audio 20000 RTP/AVP 111\r\n"
        "a=rtpmap:111 OPUS/48000/2\r\n"
        "a=sendonly\r\n"
        "a=rtcp:20001\r\n"
    )


def test_audio_channels_default_to_two() -> None:
    codec = CodecDescriptor(MediaKind.AUDIO, "audio/PCMU", 8000, 0)

    assert "a=rtpmap:0 PCMU/8000/2\r\n" in media_block(codec, 0, 20000, 20001)


def test_video_block_has_no_channels_and_no_fmtp_without_params() -> None:
    block = media_block(VP8, 96, 20002, 20003)

    assert "a=rtpmap:96 VP8/90000\r\n" in block
    assert "a=fmtp" not in block


def test_fmtp_follows_parameter_variant() -> None:
    h264 = CodecDescriptor(
        MediaKind.VIDEO,
        "video/H264",
        90000,
        102,
        params=H264Params(packetization_mode=1, profile_level_id="42e01f"),
    )
    vp8 = VP8.with_params(VP8Params(max_fr=60, max_fs=3600))
    aac = CodecDescriptor(MediaKind.AUDIO, "audio/mpeg4-generic", 44100, 97, params=AacParams("1"))
    generic = CodecDescriptor(MediaKind.AUDIO, "audio/opus", 48000, 111, params=GenericParams((("useinbandfec", "1"),)))

    assert "a=fmtp:102 packetization-mode=1;profile-level-id=42e01f\r\n" in media_block(h264, 102, 1, 2)
    assert "a=fmtp:96 max-fr=60;max-fs=3600\r\n" in media_block(vp8, 96, 1, 2)
    assert "a=rtpmap:97 MPEG4-GENERIC/44100/2\r\na=fmtp:97 profile-level-id=1\r\n" in media_block(aac, 97, 1, 2)
    assert "a=fmtp" not in media_block(generic, 111, 1, 2)


def test_unknown_codec_name_is_upper_cased_subtype() -> None:
    codec = CodecDescriptor(MediaKind.VIDEO, "video/av1", 90000, 45)

    assert "a=rtpmap:45 AV1/90000\r\n" in media_block(codec, 45, 1, 2)


def test_extra_attributes_sit_before_direction() -> None:
    block = media_block(
        VP8,
        96,
        20000,
        20001,
        extra_attributes=[framesize_attribute(96, 640, 360), framerate_attribute(30), ssrc_attribute(42, "grid0")],
    )

    lines = block.split("\r\n")
    assert lines[2:7] == [
        "a=framesize:96 640-360",
        "a=framerate:30",
        "a=ssrc:42 cname:grid0",
        "a=sendonly",
        "a=rtcp:20001",
    ]


def test_descriptor_round_trip(tmp_path: Path) -> None:
    text = build_descriptor(
        [
            media_block(VP8, 96, 20000, 20001, extra_attributes=[framesize_attribute(96, 640, 360)]),
            media_block(OPUS, 111, 20002, 20003),
        ],
        address="127.0.0.1",
    )
    path = write_descriptor(tmp_path / "stream.sdp", text)

    parsed = read_descriptor(path)

    assert parsed.address == "127.0.0.1"
    assert parsed.frame_size == (640, 360)
    assert parsed.has_video
    video, audio = parsed.media
    assert (video.kind, video.port, video.payload_type, video.codec_name, video.clock_rate, video.rtcp_port) == (
        "video",
        20000,
        96,
        "VP8",
        90000,
        20001,
    )
    assert (audio.kind, audio.port, audio.codec_name, audio.clock_rate, audio.channels, audio.rtcp_port) == (
        "audio",
        20002,
        "OPUS",
        48000,
        2,
        20003,
    )


def test_written_descriptor_uses_crlf_and_replaces_previous_content(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "input_0.sdp"
    long_text = build_descriptor([media_block(VP8, 96, 20000, 20001), media_block(OPUS, 111, 20002, 20003)])
    short_text = build_descriptor([media_block(OPUS, 111, 20004, 20005)])

    write_descriptor(path, long_text)
    write_descriptor(path, short_text)

    raw = path.read_bytes()
    assert raw == short_text.encode("utf-8")
    assert raw.count(b"\n") == raw.count(b"\r\n")
    assert [entry.name for entry in tmp_path.joinpath("nested").iterdir()] == ["input_0.sdp"]


def test_frame_size_absent_without_annotation() -> None:
    text = build_descriptor([media_block(VP8, 96, 20000, 20001)])

    assert parse_frame_size(text) is None
    assert parse_frame_size("a=framesize:96 1280-720\r\n") == (1280, 720)
