import asyncio
import logging
import signal

from hlsbridge.engine.supervisor import ProcessSupervisor
from hlsbridge.engine.timers import PeriodicTask

from conftest import FakeProcess, FakeSpawner


def _noop_timer() -> PeriodicTask:
    return PeriodicTask(0.01, lambda: None, name="keyframe:test")


def test_self_exit_drops_reference_and_cancels_timers(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="hlsbridge.engine.supervisor")
    spawner = FakeSpawner()

    async def scenario():
        supervisor = ProcessSupervisor(spawner=spawner)
        timer = _noop_timer()
        handle = await supervisor.spawn("combined-stream", ["ffmpeg", "-i", "x"], keyframe_timers=[timer])
        await asyncio.sleep(0.02)
        started = timer.running()
        handle.process.finish(1)
        await handle.exited.wait()
        await asyncio.sleep(0)
        return supervisor, handle, timer, started

    supervisor, handle, timer, started = asyncio.run(scenario())

    assert started
    assert not timer.running()
    assert supervisor.lookup("combined-stream") is None
    assert handle.returncode == 1
    assert not handle.running
    assert "exited with 1" in caplog.text
    assert "ffmpeg version n6.1" in caplog.text


def test_spawn_failure_returns_none(events) -> None:
    async def scenario():
        supervisor = ProcessSupervisor(spawner=FakeSpawner(events, fail=True))
        timer = _noop_timer()
        handle = await supervisor.spawn("demo", ["ffmpeg"], keyframe_timers=[timer])
        return supervisor, handle, timer

    supervisor, handle, timer = asyncio.run(scenario())

    assert handle is None
    assert supervisor.keys() == []
    assert not timer.running()


def test_respawn_stops_previous_generation_first(events) -> None:
    async def scenario():
        supervisor = ProcessSupervisor(spawner=FakeSpawner(events))
        first = await supervisor.spawn("demo", ["ffmpeg", "one"])
        second = await supervisor.spawn("demo", ["ffmpeg", "two"])
        await supervisor.stop_all()
        return supervisor, first, second

    supervisor, first, second = asyncio.run(scenario())

    assert events[:3] == [
        ("spawn", first.pid),
        ("signal", first.pid, signal.SIGINT),
        ("spawn", second.pid),
    ]
    assert second.generation == first.generation + 1
    assert not first.running and not second.running
    assert supervisor.keys() == []


def test_stop_of_unknown_key_is_a_no_op() -> None:
    async def scenario():
        supervisor = ProcessSupervisor(spawner=FakeSpawner())
        return await supervisor.stop("missing")

    assert asyncio.run(scenario()) is None


def test_snapshot_reports_live_processes(events) -> None:
    async def scenario():
        supervisor = ProcessSupervisor(spawner=FakeSpawner(events))
        handle = await supervisor.spawn("demo", ["ffmpeg"])
        snapshot = supervisor.snapshot()
        await supervisor.stop("demo")
        return handle, snapshot

    handle, snapshot = asyncio.run(scenario())

    assert snapshot["demo"]["pid"] == handle.pid
    assert snapshot["demo"]["running"] is True


def test_carriage_return_progress_keeps_process_tracked(events, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="hlsbridge.engine.supervisor")
    processes = []

    async def scenario():
        reader = asyncio.StreamReader()

        async def spawner(command):
            process = FakeProcess(command, events)
            process.stderr = reader
            processes.append(process)
            return process

        supervisor = ProcessSupervisor(spawner=spawner)
        timer = _noop_timer()
        handle = await supervisor.spawn("demo", ["ffmpeg"], keyframe_timers=[timer])
        # Well past the 64 KiB StreamReader limit without a single newline.
        for index in range(1000):
            reader.feed_data(
                f"frame={index:5d} fps=30 q=28.0 size=    1024kB time=00:00:10.00 bitrate=1000kbits/s speed=1x\r".encode()
            )
            if index % 100 == 0:
                await asyncio.sleep(0)
        reader.feed_eof()
        await asyncio.sleep(0.02)
        during = (handle.running, supervisor.lookup("demo") is handle, timer.running())
        returncode = await supervisor.stop(handle)
        return handle, during, returncode, timer

    handle, during, returncode, timer = asyncio.run(scenario())

    assert during == (True, True, True)
    assert processes[0].signals == [signal.SIGINT]
    assert returncode == 255
    assert handle.returncode == 255
    assert not handle.running
    assert not timer.running()
    assert "frame=  999" in caplog.text


def test_ffmpeg_output_uses_dedicated_logger(events, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="hlsbridge.engine.supervisor")

    async def scenario():
        supervisor = ProcessSupervisor(spawner=FakeSpawner(events))
        handle = await supervisor.spawn("demo", ["ffmpeg"])
        await asyncio.sleep(0.02)
        await supervisor.stop(handle)

    asyncio.run(scenario())

    relayed = [record for record in caplog.records if "ffmpeg version n6.1" in record.getMessage()]
    lifecycle = [record for record in caplog.records if "exited with" in record.getMessage()]
    assert relayed and all(record.name == "hlsbridge.engine.supervisor.ffmpeg" for record in relayed)
    assert lifecycle and all(record.name == "hlsbridge.engine.supervisor" for record in lifecycle)
