"""Live sessions keyed by name, each owning its process and relay resources."""
from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..publisher.live import PublishLoop
from ..utils import sanitize_component
from .router import Consumption, MediaEndpoint
from .supervisor import ProcessHandle, ProcessSupervisor

LOGGER = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """Everything one logical HLS output holds while it is live."""

    key: str
    directory: Path
    process: Optional[ProcessHandle] = None
    publisher: Optional[PublishLoop] = None
    endpoints: List[MediaEndpoint] = field(default_factory=list)
    consumptions: List[Consumption] = field(default_factory=list)
    descriptors: List[Path] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    def attach(self, consumption: Consumption) -> None:
        self.consumptions.append(consumption)
        self.endpoints.append(consumption.endpoint)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "directory": str(self.directory),
            "created_at": self.created_at,
            "process": self.process.to_dict() if self.process else None,
            "publishing": bool(self.publisher and self.publisher.running()),
            "consumers": [
                {"producer_id": item.producer_id, "kind": item.kind.value, "codec": item.codec.mime_type}
                for item in self.consumptions
            ],
            "ports": [
                {"rtp": endpoint.ports.rtp, "rtcp": endpoint.ports.rtcp}
                for endpoint in self.endpoints
            ],
            "descriptors": [path.name for path in self.descriptors],
        }


class SessionRegistry:
    """Hold at most one session per key and tear sessions down in a fixed order."""

    def __init__(self, root: Path, supervisor: ProcessSupervisor) -> None:
        self._root = Path(root)
        self._supervisor = supervisor
        self._sessions: Dict[str, Session] = {}

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def acquire(self, key: str) -> Session:
        """Release any session under ``key`` and register a fresh, empty one."""

        if key in self._sessions:
            LOGGER.info("Session %s already exists; releasing it first", key)
            await self.release(key)

        directory = self._root / sanitize_component(key)
        directory.mkdir(parents=True, exist_ok=True)
        session = Session(key=key, directory=directory)
        self._sessions[key] = session
        LOGGER.info("Acquired session %s at %s", key, directory)
        return session

    async def release(self, key: str) -> List[BaseException]:
        """Tear down ``key``; errors are logged and returned, never raised."""

        session = self._sessions.pop(key, None)
        if session is None:
            return []

        errors: List[BaseException] = []
        if session.process is not None:
            try:
                await self._supervisor.stop(session.process)
            except Exception as exc:
                LOGGER.exception("Failed to stop FFmpeg for session %s", key)
                errors.append(exc)
            session.process = None

        if session.publisher is not None:
            try:
                session.publisher.stop()
            except Exception as exc:
                LOGGER.warning("Failed to stop publisher for session %s: %s", key, exc)
                errors.append(exc)
            session.publisher = None

        for consumption in session.consumptions:
            try:
                consumption.close()
            except Exception as exc:
                LOGGER.warning("Failed to close consumer for %s in %s: %s", consumption.producer_id, key, exc)
                errors.append(exc)
        session.consumptions.clear()

        for endpoint in session.endpoints:
            try:
                endpoint.close()
            except Exception as exc:
                LOGGER.warning(
                    "Failed to close endpoint %d/%d in %s: %s",
                    endpoint.ports.rtp,
                    endpoint.ports.rtcp,
                    key,
                    exc,
                )
                errors.append(exc)
        session.endpoints.clear()

        try:
            shutil.rmtree(session.directory)
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOGGER.warning("Failed to remove session directory %s: %s", session.directory, exc)
            errors.append(exc)

        if errors:
            LOGGER.warning("Released session %s with %d error(s)", key, len(errors))
        else:
            LOGGER.info("Released session %s", key)
        return errors

    async def release_all(self) -> List[BaseException]:
        errors: List[BaseException] = []
        for key in list(self._sessions):
            errors.extend(await self.release(key))
        return errors

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    def lookup(self, key: str) -> Optional[Session]:
        return self._sessions.get(key)

    def keys(self) -> List[str]:
        return sorted(self._sessions)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {key: session.to_dict() for key, session in sorted(self._sessions.items())}


__all__ = ["Session", "SessionRegistry"]
