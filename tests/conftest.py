from __future__ import annotations

import asyncio
import itertools
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from hlsbridge.exceptions import TranscoderSpawnError
from hlsbridge.settings import BridgeSettings, TimingOptions

VP8 = {"mimeType": "video/VP8", "payloadType": 96, "clockRate": 90000}
H264 = {
    "mimeType": "video/H264",
    "payloadType": 102,
    "clockRate": 90000,
    "parameters": {"packetization-mode": 1, "profile-level-id": "42e01f"},
}
OPUS = {"mimeType": "audio/opus", "payloadType": 111, "clockRate": 48000, "channels": 2}


@dataclass
class FakeProducer:
    id: str
    kind: str
    rtp_parameters: Dict[str, Any] = field(default_factory=dict)


def video_producer(producer_id: str, *codecs: Dict[str, Any]) -> FakeProducer:
    return FakeProducer(producer_id, "video", {"codecs": list(codecs or (VP8,))})


def audio_producer(producer_id: str, *codecs: Dict[str, Any]) -> FakeProducer:
    return FakeProducer(producer_id, "audio", {"codecs": list(codecs or (OPUS,))})


class FakeConsumer:
    def __init__(self, producer_id: str, capabilities: Dict[str, Any], events: List[tuple], ssrc: int) -> None:
        codec = capabilities["codecs"][0]
        self.id = f"consumer-{producer_id}"
        self.producer_id = producer_id
        self.rtp_parameters = {
            "codecs": [
                {
                    "mimeType": codec["mimeType"],
                    "payloadType": codec["preferredPayloadType"],
                    "clockRate": codec["clockRate"],
                }
            ],
            "encodings": [{"ssrc": ssrc}],
        }
        self.events = events
        self.resumed = 0
        self.key_frames = 0
        self.closed = False
        self.fail_close = False

    async def resume(self) -> None:
        self.resumed += 1

    async def request_key_frame(self) -> None:
        self.key_frames += 1

    def close(self) -> None:
        self.events.append(("consumer-close", self.producer_id))
        if self.fail_close:
            raise RuntimeError("consumer close failed")
        self.closed = True


class FakeTransport:
    def __init__(self, transport_id: str, events: List[tuple], delay: float = 0.0) -> None:
        self.id = transport_id
        self.events = events
        self.delay = delay
        self.connected: Optional[tuple] = None
        self.consumers: List[FakeConsumer] = []
        self.capabilities: List[Dict[str, Any]] = []
        self.closed = False

    async def connect(self, *, ip: str, port: int, rtcp_port: int) -> None:
        self.connected = (ip, port, rtcp_port)

    async def consume(self, *, producer_id: str, rtp_capabilities: Dict[str, Any], paused: bool = False) -> FakeConsumer:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.capabilities.append(rtp_capabilities)
        consumer = FakeConsumer(producer_id, rtp_capabilities, self.events, ssrc=1000 + len(self.events))
        self.consumers.append(consumer)
        return consumer

    def close(self) -> None:
        self.events.append(("transport-close", self.id))
        self.closed = True


class FakeRouter:
    def __init__(self, events: Optional[List[tuple]] = None, delay: float = 0.0) -> None:
        self.events = events if events is not None else []
        self.delay = delay
        self.transports: List[FakeTransport] = []
        self._ids = itertools.count(1)

    async def create_plain_transport(self, *, listen_ip: str, rtcp_mux: bool = False, comedia: bool = False) -> FakeTransport:
        if self.delay:
            await asyncio.sleep(self.delay)
        transport = FakeTransport(f"transport-{next(self._ids)}", self.events)
        self.transports.append(transport)
        return transport

    def open_transports(self) -> List[FakeTransport]:
        return [transport for transport in self.transports if not transport.closed]


class FakeStream:
    def __init__(self, lines: Optional[List[bytes]] = None) -> None:
        self._lines = list(lines or [])

    async def read(self, n: int = -1) -> bytes:
        if self._lines:
            return self._lines.pop(0)
        return b""


class FakeProcess:
    _pids = itertools.count(4000)

    def __init__(self, command: List[str], events: List[tuple], *, ignore: tuple = ()) -> None:
        self.command = list(command)
        self.events = events
        self.ignore = set(ignore)
        self.pid = next(self._pids)
        self.returncode: Optional[int] = None
        self.signals: List[int] = []
        self.stderr = FakeStream([b"ffmpeg version n6.1\n", b"frame=  10 fps=0.0 q=-1.0\n"])
        self.stdout = FakeStream()
        self._exited = asyncio.Event()

    def send_signal(self, signum: int) -> None:
        if self.returncode is not None:
            raise ProcessLookupError(self.pid)
        self.signals.append(signum)
        self.events.append(("signal", self.pid, signum))
        if signum in self.ignore and signum != signal.SIGKILL:
            return
        self.finish(255)

    def finish(self, code: int = 0) -> None:
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


class FakeSpawner:
    def __init__(self, events: Optional[List[tuple]] = None, *, fail: bool = False) -> None:
        self.events = events if events is not None else []
        self.fail = fail
        self.processes: List[FakeProcess] = []

    async def __call__(self, command: List[str]) -> FakeProcess:
        if self.fail:
            raise TranscoderSpawnError("ffmpeg not found")
        process = FakeProcess(command, self.events)
        self.processes.append(process)
        self.events.append(("spawn", process.pid))
        return process

    @property
    def commands(self) -> List[List[str]]:
        return [process.command for process in self.processes]

    def live(self) -> List[FakeProcess]:
        return [process for process in self.processes if process.returncode is None]


def make_settings(root: Path, **overrides: Any) -> BridgeSettings:
    timing = TimingOptions(
        publish_interval=0.5,
        publish_freshness=10.0,
        readiness_timeout=0.2,
        readiness_interval=0.01,
        retry_delay=0.01,
    )
    values: Dict[str, Any] = {
        "output_root": root / "hls",
        "port_range_start": 40000,
        "port_range_end": 40100,
        "timing": timing,
        "per_producer_enabled": False,
    }
    values.update(overrides)
    return BridgeSettings(**values)


@pytest.fixture
def events() -> List[tuple]:
    return []


@pytest.fixture
def router(events: List[tuple]) -> FakeRouter:
    return FakeRouter(events)


@pytest.fixture
def spawner(events: List[tuple]) -> FakeSpawner:
    return FakeSpawner(events)


@pytest.fixture
def settings(tmp_path: Path) -> BridgeSettings:
    return make_settings(tmp_path)
