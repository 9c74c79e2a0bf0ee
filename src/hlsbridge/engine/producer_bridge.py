"""Per-client HLS sessions fed by one client's audio and video producers."""
from __future__ import annotations

import logging
from typing import List, Optional

from ..exceptions import NoUsableCodecError
from ..media.codecs import MediaKind, select_codec
from ..media.command import SingleCommandBuilder
from ..media.sdp import build_descriptor, media_block, write_descriptor
from ..publisher.live import PublishLoop
from ..settings import BridgeSettings
from .ports import PortPool
from .registry import SessionRegistry
from .router import MediaRouter, Producer, open_consumption, producer_codecs
from .supervisor import ProcessSupervisor

LOGGER = logging.getLogger(__name__)

DESCRIPTOR_NAME = "stream.sdp"


class ProducerBridge:
    """Build one FFmpeg HLS session from a client's producers.

    The session key is the video producer id, or the audio producer id when
    the client has no video. Output is mirrored into ``<root>/live/``.
    """

    def __init__(
        self,
        *,
        router: MediaRouter,
        registry: SessionRegistry,
        supervisor: ProcessSupervisor,
        ports: PortPool,
        settings: BridgeSettings,
    ) -> None:
        self._router = router
        self._registry = registry
        self._supervisor = supervisor
        self._ports = ports
        self._settings = settings

    async def start(self, video: Optional[Producer] = None, audio: Optional[Producer] = None) -> Optional[str]:
        """(Re)start the session for ``video``/``audio``; returns its key or ``None``."""

        lead = video or audio
        if lead is None:
            return None
        key = str(lead.id)
        session = await self._registry.acquire(key)

        blocks: List[str] = []
        kinds: set[MediaKind] = set()
        try:
            for kind, producer in ((MediaKind.VIDEO, video), (MediaKind.AUDIO, audio)):
                if producer is None:
                    continue
                try:
                    codec = select_codec(kind, producer_codecs(producer))
                except NoUsableCodecError as exc:
                    LOGGER.warning("Skipping %s producer %s: %s", kind.value, producer.id, exc)
                    continue
                consumption = await open_consumption(
                    self._router,
                    self._ports,
                    producer,
                    codec,
                    listen_ip=self._settings.listen_ip,
                )
                session.attach(consumption)
                ports = consumption.endpoint.ports
                blocks.append(media_block(codec, consumption.payload_type, ports.rtp, ports.rtcp))
                kinds.add(kind)
        except Exception:
            LOGGER.exception("Failed to relay producers for session %s", key)
            await self._registry.release(key)
            return None

        if not blocks:
            LOGGER.warning("No usable tracks for session %s", key)
            await self._registry.release(key)
            return None

        descriptor = write_descriptor(
            session.directory / DESCRIPTOR_NAME,
            build_descriptor(blocks, address=self._settings.listen_ip),
        )
        session.descriptors.append(descriptor)

        builder = SingleCommandBuilder(
            output_dir=session.directory,
            options=self._settings.single,
            hls=self._settings.single_hls,
            ffmpeg_binary=self._settings.ffmpeg_binary,
        )
        command = builder.build_command(
            descriptor,
            has_video=MediaKind.VIDEO in kinds,
            has_audio=MediaKind.AUDIO in kinds,
        )
        handle = await self._supervisor.spawn(key, command)
        if handle is None:
            await self._registry.release(key)
            return None
        session.process = handle

        for consumption in session.consumptions:
            try:
                await consumption.resume()
                if consumption.kind is MediaKind.VIDEO:
                    await consumption.request_key_frame()
            except Exception:
                LOGGER.debug("Failed to prime consumer of %s", consumption.producer_id, exc_info=True)

        publisher = PublishLoop(
            session.directory,
            self._settings.live_dir,
            interval=self._settings.timing.publish_interval,
            freshness_window=self._settings.timing.publish_freshness,
            playlist_name=self._settings.single_hls.playlist_name,
        )
        publisher.start()
        session.publisher = publisher
        LOGGER.info("Per-producer session %s started (%s)", key, ", ".join(sorted(k.value for k in kinds)))
        return key

    async def stop(self, key: str) -> None:
        await self._registry.release(key)


__all__ = ["DESCRIPTOR_NAME", "ProducerBridge"]
