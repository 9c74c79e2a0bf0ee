"""The bridge context: owns every live resource and exposes the event entry points."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from ..media.codecs import MediaKind
from ..settings import BridgeSettings
from .coordinator import CompositeCoordinator
from .participants import ProducerSession
from .ports import PortPool
from .producer_bridge import ProducerBridge
from .registry import SessionRegistry
from .router import MediaRouter, Producer
from .status import BridgeStatus, StatusBroadcaster
from .supervisor import ProcessSupervisor, Spawner
from .timers import PeriodicTask

LOGGER = logging.getLogger(__name__)


class BridgeContext:
    """Translate producer lifecycle events into session changes.

    All methods must run on the event loop that owns the context. The signalling
    layer calls the ``notify_*`` entry points; nothing is registered on router
    objects.
    """

    def __init__(
        self,
        router: MediaRouter,
        settings: BridgeSettings,
        *,
        spawner: Optional[Spawner] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
    ) -> None:
        self.router = router
        self.settings = settings
        settings.output_root.mkdir(parents=True, exist_ok=True)
        self.ports = PortPool(settings.port_range_start, settings.port_range_end)
        self.supervisor = supervisor or ProcessSupervisor(spawner=spawner)
        self.registry = SessionRegistry(settings.output_root, self.supervisor)
        self.coordinator = CompositeCoordinator(
            router=router,
            registry=self.registry,
            supervisor=self.supervisor,
            ports=self.ports,
            settings=settings,
            key=settings.composite_key,
        )
        self.producer_bridge = ProducerBridge(
            router=router,
            registry=self.registry,
            supervisor=self.supervisor,
            ports=self.ports,
            settings=settings,
        )
        self.participants: Dict[str, ProducerSession] = {}
        self._owners: Dict[str, str] = {}
        self._broadcaster = broadcaster
        self._heartbeat: Optional[PeriodicTask] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------
    async def notify_producer_added(self, client_id: str, producer: Producer) -> None:
        try:
            kind = MediaKind.parse(getattr(producer, "kind", None))
        except ValueError:
            LOGGER.warning(
                "Ignoring producer %s with unsupported kind %r",
                getattr(producer, "id", "?"),
                getattr(producer, "kind", None),
            )
            return

        entry = self.participants.get(client_id)
        if entry is None:
            entry = ProducerSession(client_id=client_id)
            self.participants[client_id] = entry
        replaced = entry.assign(kind, producer)
        if replaced is not None and replaced.id != producer.id:
            self._owners.pop(replaced.id, None)
        self._owners[producer.id] = client_id
        LOGGER.info("Client %s added %s producer %s", client_id, kind.value, producer.id)

        await self._refresh_live(entry)
        await self._membership_changed()

    async def notify_producer_closed(self, producer_id: str) -> None:
        client_id = self._owners.pop(producer_id, None)
        if client_id is None:
            LOGGER.debug("Closed producer %s is not tracked", producer_id)
            return
        entry = self.participants.get(client_id)
        if entry is None or not entry.discard(producer_id):
            return
        LOGGER.info("Producer %s of client %s closed", producer_id, client_id)

        if entry.empty:
            self.participants.pop(client_id, None)
            await self._stop_live(entry)
        else:
            await self._refresh_live(entry)
        await self._membership_changed()

    async def notify_client_disconnected(self, client_id: str) -> None:
        entry = self.participants.pop(client_id, None)
        if entry is None:
            return
        for producer in (entry.video, entry.audio):
            if producer is not None:
                self._owners.pop(producer.id, None)
        LOGGER.info("Client %s disconnected", client_id)
        await self._stop_live(entry)
        await self._membership_changed()

    async def rebuild_composite(self) -> bool:
        if not self.settings.composite_enabled:
            return False
        return await self.coordinator.rebuild(self.participants)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    async def snapshot(self) -> BridgeStatus:
        return BridgeStatus(
            sessions=self.registry.snapshot(),
            composite=self.coordinator.snapshot(),
            participants=[entry.to_dict() for _, entry in sorted(self.participants.items())],
            processes=self.supervisor.snapshot(),
            ports_in_use=len(self.ports.in_use()),
        )

    def start_heartbeat(self) -> None:
        broadcaster = self._broadcaster
        if broadcaster is None or self._heartbeat is not None:
            return
        self._heartbeat = PeriodicTask(
            self.settings.status.heartbeat_seconds,
            self.broadcast_status,
            name="bridge-status-heartbeat",
            run_immediately=True,
        )
        self._heartbeat.start()

    def describe(self) -> Dict[str, Any]:
        return {
            "output_root": str(self.settings.output_root),
            "composite_enabled": self.settings.composite_enabled,
            "per_producer_enabled": self.settings.per_producer_enabled,
        }

    async def broadcast_status(self) -> None:
        broadcaster = self._broadcaster
        if broadcaster is None:
            return
        status = await self.snapshot()
        await asyncio.to_thread(broadcaster.publish, status)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        LOGGER.info("Shutting down bridge context")
        if self._heartbeat is not None:
            self._heartbeat.stop()
            self._heartbeat = None
        await self.coordinator.close()
        errors = await self.registry.release_all()
        await self.supervisor.stop_all()
        self.participants.clear()
        self._owners.clear()
        if errors:
            LOGGER.warning("Shutdown finished with %d release error(s)", len(errors))
        if self._broadcaster is not None:
            await asyncio.to_thread(self._broadcaster.clear)
            self._broadcaster.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _membership_changed(self) -> None:
        await self.rebuild_composite()
        await self.broadcast_status()

    async def _refresh_live(self, entry: ProducerSession) -> None:
        if not self.settings.per_producer_enabled:
            return
        new_key = entry.session_key
        if entry.live_key and entry.live_key != new_key:
            LOGGER.info("Releasing stale per-producer session %s", entry.live_key)
            await self.producer_bridge.stop(entry.live_key)
            entry.live_key = None
        entry.live_key = await self.producer_bridge.start(entry.video, entry.audio)

    async def _stop_live(self, entry: ProducerSession) -> None:
        if entry.live_key:
            await self.producer_bridge.stop(entry.live_key)
            entry.live_key = None


__all__ = ["BridgeContext"]
