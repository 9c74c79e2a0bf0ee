import asyncio
from pathlib import Path

import pytest

from hlsbridge.engine.readiness import descriptor_ready, wait_for_descriptors
from hlsbridge.exceptions import DescriptorNotReadyError
from hlsbridge.media.codecs import CodecDescriptor, MediaKind
from hlsbridge.media.sdp import build_descriptor, framesize_attribute, media_block, write_descriptor

VP8 = CodecDescriptor(MediaKind.VIDEO, "video/VP8", 90000, 96)
OPUS = CodecDescriptor(MediaKind.AUDIO, "audio/opus", 48000, 111, channels=2)


def _video(path: Path, width: int = 640, height: int = 360) -> Path:
    extra = [framesize_attribute(96, width, height)] if width is not None else []
    return write_descriptor(path, build_descriptor([media_block(VP8, 96, 20000, 20001, extra_attributes=extra)]))


def test_ready_descriptors(tmp_path: Path) -> None:
    audio = write_descriptor(tmp_path / "audio_0.sdp", build_descriptor([media_block(OPUS, 111, 20002, 20003)]))

    assert descriptor_ready(_video(tmp_path / "input_0.sdp"))
    assert descriptor_ready(audio)
    assert not descriptor_ready(tmp_path / "missing.sdp")
    assert not descriptor_ready(_video(tmp_path / "input_1.sdp", width=None))
    assert not descriptor_ready(_video(tmp_path / "input_2.sdp", width=0, height=360))


def test_wait_returns_when_everything_is_ready(tmp_path: Path) -> None:
    paths = [_video(tmp_path / "input_0.sdp"), _video(tmp_path / "input_1.sdp")]

    asyncio.run(wait_for_descriptors(paths, timeout=0.5, interval=0.01))


def test_wait_names_the_descriptor_that_never_became_ready(tmp_path: Path) -> None:
    first = _video(tmp_path / "input_0.sdp")
    bad = _video(tmp_path / "input_1.sdp", width=None)
    last = _video(tmp_path / "input_2.sdp")

    with pytest.raises(DescriptorNotReadyError, match="input_1.sdp") as excinfo:
        asyncio.run(wait_for_descriptors([first, bad, last], timeout=0.05, interval=0.01))

    message = str(excinfo.value)
    assert "input_0.sdp" not in message
    assert "input_2.sdp" not in message


def test_wait_picks_up_descriptor_written_mid_wait(tmp_path: Path) -> None:
    path = tmp_path / "input_0.sdp"

    async def scenario():
        waiter = asyncio.create_task(wait_for_descriptors([path], timeout=1.0, interval=0.01))
        await asyncio.sleep(0.05)
        assert not waiter.done()
        _video(path)
        await waiter

    asyncio.run(scenario())
