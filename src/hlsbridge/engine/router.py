"""Narrow view of the media router and the relay resources built on top of it.

The bridge never reaches into the router's transport internals. It only needs
to create a plain RTP endpoint, point it at a local port pair, attach a
consumer for one producer and ask that consumer for keyframes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from ..media.codecs import CodecDescriptor, MediaKind
from .ports import PortPair, PortPool

LOGGER = logging.getLogger(__name__)


class Producer(Protocol):
    id: str
    kind: str
    rtp_parameters: Mapping[str, Any]


class Consumer(Protocol):
    id: str
    rtp_parameters: Mapping[str, Any]

    async def resume(self) -> None: ...

    async def request_key_frame(self) -> None: ...

    def close(self) -> None: ...


class PlainTransport(Protocol):
    id: str

    async def connect(self, *, ip: str, port: int, rtcp_port: int) -> None: ...

    async def consume(
        self,
        *,
        producer_id: str,
        rtp_capabilities: Mapping[str, Any],
        paused: bool = False,
    ) -> Consumer: ...

    def close(self) -> None: ...


class MediaRouter(Protocol):
    async def create_plain_transport(
        self,
        *,
        listen_ip: str,
        rtcp_mux: bool = False,
        comedia: bool = False,
    ) -> PlainTransport: ...


@dataclass(eq=False)
class MediaEndpoint:
    """Plain relay transport plus the local port pair it sends to."""

    transport: PlainTransport
    ports: PortPair
    pool: Optional[PortPool] = None
    closed: bool = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.transport.close()
        finally:
            if self.pool is not None:
                self.pool.release(self.ports)


@dataclass(eq=False)
class Consumption:
    """One consumer attached to one producer over one endpoint."""

    producer_id: str
    consumer: Consumer
    endpoint: MediaEndpoint
    codec: CodecDescriptor
    closed: bool = False

    @property
    def kind(self) -> MediaKind:
        return self.codec.kind

    @property
    def payload_type(self) -> int:
        """Payload type the consumer actually sends, falling back to the producer's."""

        codecs = (self.consumer.rtp_parameters or {}).get("codecs") or []
        if codecs and isinstance(codecs[0], Mapping) and codecs[0].get("payloadType") is not None:
            return int(codecs[0]["payloadType"])
        return self.codec.payload_type

    @property
    def ssrc(self) -> Optional[int]:
        encodings = (self.consumer.rtp_parameters or {}).get("encodings") or []
        if encodings and isinstance(encodings[0], Mapping) and encodings[0].get("ssrc"):
            return int(encodings[0]["ssrc"])
        return None

    async def resume(self) -> None:
        await self.consumer.resume()

    async def request_key_frame(self) -> None:
        await self.consumer.request_key_frame()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.consumer.close()


async def open_consumption(
    router: MediaRouter,
    pool: PortPool,
    producer: Producer,
    codec: CodecDescriptor,
    *,
    listen_ip: str,
) -> Consumption:
    """Create an endpoint for ``producer`` and attach a consumer restricted to ``codec``.

    Anything created before a failure is closed again before the error propagates.
    """

    ports = pool.allocate_pair()
    endpoint: Optional[MediaEndpoint] = None
    try:
        transport = await router.create_plain_transport(listen_ip=listen_ip, rtcp_mux=False, comedia=False)
        endpoint = MediaEndpoint(transport=transport, ports=ports, pool=pool)
        await transport.connect(ip=listen_ip, port=ports.rtp, rtcp_port=ports.rtcp)
        consumer = await transport.consume(
            producer_id=producer.id,
            rtp_capabilities={"codecs": [codec.to_capability()], "headerExtensions": []},
            paused=False,
        )
    except BaseException:
        if endpoint is not None:
            try:
                endpoint.close()
            except Exception:
                LOGGER.warning("Failed to close relay endpoint for producer %s", producer.id, exc_info=True)
        else:
            pool.release(ports)
        raise

    LOGGER.info(
        "Relaying %s producer %s (%s) to %s:%d/%d",
        codec.kind.value,
        producer.id,
        codec.mime_type,
        listen_ip,
        ports.rtp,
        ports.rtcp,
    )
    return Consumption(producer_id=producer.id, consumer=consumer, endpoint=endpoint, codec=codec)


def producer_codecs(producer: Producer) -> list[Mapping[str, Any]]:
    codecs = (producer.rtp_parameters or {}).get("codecs") or []
    return [entry for entry in codecs if isinstance(entry, Mapping)]


__all__ = [
    "Consumer",
    "Consumption",
    "MediaEndpoint",
    "MediaRouter",
    "PlainTransport",
    "Producer",
    "open_consumption",
    "producer_codecs",
]
