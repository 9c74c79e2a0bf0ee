"""Single-flight rebuild of the composite grid pipeline."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..exceptions import DescriptorNotReadyError, NoUsableCodecError
from ..media.codecs import CodecDescriptor, MediaKind, VP8Params, select_codec
from ..media.command import CompositeCommandBuilder
from ..media.layout import Canvas, grid_geometry
from ..media.sdp import (
    build_descriptor,
    framerate_attribute,
    framesize_attribute,
    media_block,
    ssrc_attribute,
    write_descriptor,
)
from ..publisher.live import PublishLoop
from ..settings import BridgeSettings
from .participants import ProducerSession
from .ports import PortPool
from .readiness import wait_for_descriptors
from .registry import Session, SessionRegistry
from .router import Consumption, MediaRouter, Producer, open_consumption, producer_codecs
from .supervisor import ProcessSupervisor
from .timers import PeriodicTask

LOGGER = logging.getLogger(__name__)

COMPOSITE_KEY = "combined-stream"
VP8_MAX_FRAME_SIZE = 3600


class CoordinatorState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass
class _Inputs:
    video: List[Path] = field(default_factory=list)
    audio: List[Path] = field(default_factory=list)
    keyframe_timers: List[PeriodicTask] = field(default_factory=list)
    participants: int = 0


class CompositeCoordinator:
    """Own the ``combined-stream`` session and rebuild it on membership changes.

    Every rebuild tears the previous pipeline down and builds a new one from
    the current participant table. A rebuild requested while another is in
    progress is dropped.
    """

    def __init__(
        self,
        *,
        router: MediaRouter,
        registry: SessionRegistry,
        supervisor: ProcessSupervisor,
        ports: PortPool,
        settings: BridgeSettings,
        key: str = COMPOSITE_KEY,
    ) -> None:
        self._router = router
        self._registry = registry
        self._supervisor = supervisor
        self._ports = ports
        self._settings = settings
        self._key = key
        self._state = CoordinatorState.IDLE
        self._updating = False
        self._latest: Dict[str, ProducerSession] = {}
        self._retry_task: Optional[asyncio.Task[None]] = None
        self._video_inputs = 0
        self._audio_inputs = 0
        self._participants = 0
        self._last_error: Optional[str] = None
        self._last_rebuild: Optional[float] = None

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def key(self) -> str:
        return self._key

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def updating(self) -> bool:
        return self._updating

    @property
    def retry_pending(self) -> bool:
        task = self._retry_task
        return bool(task and not task.done())

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "session_key": self._key,
            "updating": self._updating,
            "participants": self._participants,
            "video_inputs": self._video_inputs,
            "audio_inputs": self._audio_inputs,
            "retry_pending": self.retry_pending,
            "last_error": self._last_error,
            "last_rebuild": self._last_rebuild,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def rebuild(self, participants: Mapping[str, ProducerSession]) -> bool:
        """Rebuild the composite for ``participants``; ``False`` when dropped."""

        self._latest = dict(participants)
        if self._updating:
            LOGGER.info("Composite rebuild already in progress; dropping request")
            return False
        self._updating = True
        try:
            self._cancel_retry()
            await self._rebuild(self._latest, allow_retry=True)
        finally:
            self._updating = False
        return True

    async def close(self) -> None:
        self._cancel_retry()
        await self._registry.release(self._key)
        self._enter_idle()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _rebuild(self, participants: Mapping[str, ProducerSession], *, allow_retry: bool) -> None:
        self._last_rebuild = time.time()
        await self._registry.release(self._key)

        eligible = [entry for entry in participants.values() if entry.video is not None]
        limit = self._settings.max_participants
        if len(eligible) > limit:
            LOGGER.warning("Composite limited to %d of %d participants", limit, len(eligible))
            eligible = eligible[:limit]
        if not eligible:
            LOGGER.info("No video participants; composite is idle")
            self._enter_idle()
            return

        session = await self._registry.acquire(self._key)
        try:
            inputs = await self._attach_inputs(session, eligible)
        except Exception as exc:
            LOGGER.exception("Failed to build composite inputs")
            await self._abandon(str(exc))
            return

        if not inputs.video:
            LOGGER.warning("No usable video inputs for composite")
            await self._abandon("no usable video inputs")
            return

        timing = self._settings.timing
        try:
            await wait_for_descriptors(
                inputs.video,
                timeout=timing.readiness_timeout,
                interval=timing.readiness_interval,
            )
        except DescriptorNotReadyError as exc:
            await self._abandon(str(exc))
            if allow_retry:
                LOGGER.warning("%s; retrying composite in %.1fs", exc, timing.retry_delay)
                self._retry_task = asyncio.get_running_loop().create_task(self._retry())
            else:
                LOGGER.error("%s; giving up on composite", exc)
            return

        builder = CompositeCommandBuilder(
            output_dir=session.directory,
            output=self._settings.output,
            hls=self._settings.hls,
            sync=self._settings.sync,
            ffmpeg_binary=self._settings.ffmpeg_binary,
        )
        command = builder.build_command(inputs.video, inputs.audio)
        handle = await self._supervisor.spawn(self._key, command, keyframe_timers=inputs.keyframe_timers)
        if handle is None:
            await self._abandon("ffmpeg failed to start")
            return
        session.process = handle

        publisher = PublishLoop(
            session.directory,
            self._settings.combined_dir,
            interval=timing.publish_interval,
            touch_target=True,
            playlist_name=self._settings.hls.playlist_name,
        )
        publisher.start()
        session.publisher = publisher

        self._state = CoordinatorState.ACTIVE
        self._participants = inputs.participants
        self._video_inputs = len(inputs.video)
        self._audio_inputs = len(inputs.audio)
        self._last_error = None
        LOGGER.info(
            "Composite active: %d video input(s), %d audio input(s)",
            self._video_inputs,
            self._audio_inputs,
        )

    async def _attach_inputs(self, session: Session, eligible: List[ProducerSession]) -> _Inputs:
        output = self._settings.output
        geometry = grid_geometry(len(eligible), Canvas(output.width, output.height))
        inputs = _Inputs()

        for entry in eligible:
            index = len(inputs.video)
            video = await self._consume(session, entry.video, MediaKind.VIDEO)
            if video is None:
                continue
            inputs.participants += 1
            await _prime(video)
            inputs.keyframe_timers.append(
                PeriodicTask(
                    output.keyframe_interval,
                    video.request_key_frame,
                    name=f"keyframe:{video.producer_id}",
                )
            )
            codec = video.codec
            if codec.subtype == "vp8":
                codec = codec.with_params(VP8Params(max_fr=output.fps, max_fs=VP8_MAX_FRAME_SIZE))
            extras = [
                framesize_attribute(video.payload_type, geometry.cell_width, geometry.cell_height),
                framerate_attribute(output.fps),
            ]
            if video.ssrc is not None:
                extras.append(ssrc_attribute(video.ssrc, f"combinedgrid{index}"))
            inputs.video.append(
                self._write(session, f"input_{index}.sdp", video, codec=codec, extras=extras)
            )

            if entry.audio is None:
                continue
            audio = await self._consume(session, entry.audio, MediaKind.AUDIO)
            if audio is None:
                continue
            await _prime(audio, key_frame=False)
            extras = []
            if audio.ssrc is not None:
                extras.append(ssrc_attribute(audio.ssrc, f"combinedgridaudio{index}"))
            inputs.audio.append(self._write(session, f"audio_{index}.sdp", audio, extras=extras))
        return inputs

    async def _consume(self, session: Session, producer: Optional[Producer], kind: MediaKind) -> Optional[Consumption]:
        if producer is None:
            return None
        try:
            codec = select_codec(kind, producer_codecs(producer))
        except NoUsableCodecError as exc:
            LOGGER.warning("Skipping %s producer %s: %s", kind.value, producer.id, exc)
            return None
        consumption = await open_consumption(
            self._router,
            self._ports,
            producer,
            codec,
            listen_ip=self._settings.listen_ip,
        )
        session.attach(consumption)
        return consumption

    def _write(
        self,
        session: Session,
        name: str,
        consumption: Consumption,
        *,
        codec: Optional[CodecDescriptor] = None,
        extras: List[str],
    ) -> Path:
        ports = consumption.endpoint.ports
        block = media_block(
            codec or consumption.codec,
            consumption.payload_type,
            ports.rtp,
            ports.rtcp,
            extra_attributes=extras,
        )
        path = write_descriptor(
            session.directory / name,
            build_descriptor([block], address=self._settings.listen_ip),
        )
        session.descriptors.append(path)
        return path

    async def _retry(self) -> None:
        await asyncio.sleep(self._settings.timing.retry_delay)
        self._retry_task = None
        if self._updating:
            LOGGER.info("Composite retry skipped; a rebuild is already running")
            return
        self._updating = True
        try:
            await self._rebuild(self._latest, allow_retry=False)
        finally:
            self._updating = False

    async def _abandon(self, reason: str) -> None:
        self._last_error = reason
        await self._registry.release(self._key)
        self._enter_idle()

    def _enter_idle(self) -> None:
        self._state = CoordinatorState.IDLE
        self._participants = 0
        self._video_inputs = 0
        self._audio_inputs = 0

    def _cancel_retry(self) -> None:
        task = self._retry_task
        self._retry_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


async def _prime(consumption: Consumption, *, key_frame: bool = True) -> None:
    try:
        await consumption.resume()
    except Exception:
        LOGGER.debug("Resume failed for consumer of %s", consumption.producer_id, exc_info=True)
    if not key_frame:
        return
    try:
        await consumption.request_key_frame()
    except Exception:
        LOGGER.debug("Keyframe request failed for %s", consumption.producer_id, exc_info=True)


__all__ = ["COMPOSITE_KEY", "CompositeCoordinator", "CoordinatorState"]
