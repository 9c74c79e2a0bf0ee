import asyncio
import signal

from hlsbridge.engine.stop_strategy import StopStrategy

from conftest import FakeProcess


def _strategy() -> StopStrategy:
    return StopStrategy(graceful_timeout=0.02, terminate_timeout=0.02, kill_timeout=0.5)


def test_sigint_is_enough_for_a_cooperative_process() -> None:
    events: list = []

    async def scenario():
        process = FakeProcess(["ffmpeg"], events)
        return process, await _strategy().shutdown(process)

    process, code = asyncio.run(scenario())

    assert code == 255
    assert process.signals == [signal.SIGINT]


def test_stubborn_process_is_escalated_to_sigkill() -> None:
    events: list = []

    async def scenario():
        process = FakeProcess(["ffmpeg"], events, ignore=(signal.SIGINT, signal.SIGTERM))
        return process, await _strategy().shutdown(process, label="ffmpeg[demo]")

    process, code = asyncio.run(scenario())

    assert process.signals == [signal.SIGINT, signal.SIGTERM, signal.SIGKILL]
    assert code == 255


def test_already_exited_process_is_not_signalled() -> None:
    events: list = []

    async def scenario():
        process = FakeProcess(["ffmpeg"], events)
        process.finish(0)
        return process, await _strategy().shutdown(process)

    process, code = asyncio.run(scenario())

    assert code == 0
    assert process.signals == []
