import asyncio
import os
import time
from pathlib import Path

from hlsbridge.publisher import PublishLoop
from hlsbridge.publisher import live


def _segment(directory: Path, name: str, payload: bytes = b"\x47" * 188) -> Path:
    path = directory / name
    path.write_bytes(payload)
    return path


def _playlist(directory: Path, *segments: str) -> Path:
    lines = ["#EXTM3U", "#EXT-X-TARGETDURATION:2"]
    for name in segments:
        lines.extend(["#EXTINF:2.0,", name])
    path = directory / "playlist.m3u8"
    path.write_text("\n".join(lines) + "\n")
    return path


def test_segments_are_copied_and_stale_ones_pruned(tmp_path: Path) -> None:
    source = tmp_path / "work"
    target = tmp_path / "public"
    source.mkdir()
    target.mkdir()
    _segment(source, "segment_001.ts")
    _segment(source, "segment_002.ts")
    _segment(target, "segment_000.ts")
    (target / "notes.txt").write_text("keep")
    _playlist(source, "segment_001.ts", "segment_002.ts")

    loop = PublishLoop(source, target)
    result = loop.publish_once()

    assert result.published
    assert (result.copied, result.removed) == (2, 1)
    assert sorted(path.name for path in target.iterdir()) == [
        "notes.txt",
        "playlist.m3u8",
        "segment_001.ts",
        "segment_002.ts",
    ]
    assert (target / "playlist.m3u8").read_text() == (source / "playlist.m3u8").read_text()
    assert loop.last_result == result

    again = loop.publish_once()
    assert (again.copied, again.removed) == (0, 0)


def test_missing_playlist_publishes_nothing(tmp_path: Path) -> None:
    source = tmp_path / "work"
    source.mkdir()
    _segment(source, "segment_000.ts")

    result = PublishLoop(source, tmp_path / "public").publish_once()

    assert not result.published
    assert result.reason == "playlist missing"
    assert not (tmp_path / "public").exists()


def test_stale_playlist_is_skipped(tmp_path: Path) -> None:
    source = tmp_path / "work"
    source.mkdir()
    playlist = _playlist(source)
    old = time.time() - 60
    os.utime(playlist, (old, old))

    result = PublishLoop(source, tmp_path / "public", freshness_window=10.0).publish_once()

    assert result.reason == "stale"
    assert not (tmp_path / "public" / "playlist.m3u8").exists()


def test_touch_target_refreshes_playlist_mtime(tmp_path: Path) -> None:
    source = tmp_path / "work"
    source.mkdir()
    playlist = _playlist(source)
    old = time.time() - 600
    os.utime(playlist, (old, old))

    PublishLoop(source, tmp_path / "public", touch_target=True).publish_once()

    assert (tmp_path / "public" / "playlist.m3u8").stat().st_mtime > old + 300


def test_fmp4_init_segment_is_published(tmp_path: Path) -> None:
    source = tmp_path / "work"
    source.mkdir()
    _segment(source, "init.mp4", b"ftyp")
    _segment(source, "segment_000.m4s")
    _playlist(source, "segment_000.m4s")

    PublishLoop(source, tmp_path / "public").publish_once()

    assert (tmp_path / "public" / "init.mp4").read_bytes() == b"ftyp"
    assert (tmp_path / "public" / "segment_000.m4s").exists()


def test_loop_publishes_immediately_on_start(tmp_path: Path) -> None:
    source = tmp_path / "work"
    source.mkdir()
    _playlist(source)
    loop = PublishLoop(source, tmp_path / "public", interval=5.0)

    async def scenario():
        loop.start()
        await asyncio.sleep(0.1)
        running = loop.running()
        loop.stop()
        return running

    assert asyncio.run(scenario())
    assert not loop.running()
    assert loop.last_result is not None and loop.last_result.published


def test_loop_copies_on_worker_thread(tmp_path: Path, monkeypatch) -> None:
    source = tmp_path / "work"
    source.mkdir()
    _playlist(source)
    loop = PublishLoop(source, tmp_path / "public", interval=5.0)
    offloaded = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(live.asyncio, "to_thread", recording_to_thread)

    async def scenario():
        loop.start()
        await asyncio.sleep(0.1)
        loop.stop()

    asyncio.run(scenario())

    assert offloaded == [loop.publish_once]
    assert loop.last_result is not None and loop.last_result.published
