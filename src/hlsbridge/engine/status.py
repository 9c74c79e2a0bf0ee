"""Bridge status snapshots and their Redis broadcaster."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import redis
from redis import Redis
from redis.exceptions import RedisError

LOGGER = logging.getLogger(__name__)


@dataclass
class BridgeStatus:
    """Snapshot of everything the bridge is currently running."""

    sessions: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    composite: Dict[str, Any] = field(default_factory=dict)
    participants: List[Dict[str, Any]] = field(default_factory=list)
    processes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    ports_in_use: int = 0

    @property
    def session_keys(self) -> List[str]:
        return sorted(self.sessions)

    def to_payload(self, *, origin: Optional[str] = None, updated_at: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "session_keys": self.session_keys,
            "sessions": dict(self.sessions),
            "composite": dict(self.composite),
            "participants": list(self.participants),
            "processes": dict(self.processes),
            "ports_in_use": self.ports_in_use,
        }
        if origin:
            payload["origin"] = origin
        if updated_at:
            payload["updated_at"] = updated_at
        return payload


class StatusBroadcaster:
    """Publish bridge status snapshots to Redis for downstream consumers."""

    def __init__(
        self,
        *,
        redis_url: Optional[str],
        prefix: str,
        namespace: str,
        key: str,
        channel: Optional[str],
        ttl_seconds: int,
        client: Optional[Redis] = None,
    ) -> None:
        self._redis_url = redis_url or ""
        self._prefix = prefix.strip() or "bridge"
        self._namespace = namespace.strip() or "hls"
        self._key = key.strip() or "status"
        self._channel = channel.strip() if isinstance(channel, str) and channel.strip() else None
        self._ttl = max(0, int(ttl_seconds))
        self._client: Optional[Redis] = client
        self._last_error: Optional[str] = None
        if self._client is None:
            self._connect()

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    def _connect(self) -> None:
        if not self._redis_url:
            self._last_error = "Redis URL not configured"
            self._client = None
            return

        try:
            client = redis.from_url(
                self._redis_url,
                socket_timeout=3,
                health_check_interval=30,
            )
            client.ping()
        except (RedisError, ValueError) as exc:  # pragma: no cover - network dependent
            LOGGER.warning("Failed to connect to Redis for status broadcasting: %s", exc)
            self._client = None
            self._last_error = f"Failed to connect to Redis: {exc}"
            return

        self._client = client
        self._last_error = None

    def _ensure_client(self) -> Optional[Redis]:
        client = self._client
        if client is not None:
            return client
        self._connect()
        return self._client

    def close(self) -> None:
        client = self._client
        if client is None:
            return
        try:
            client.close()
        except RedisError:  # pragma: no cover - network dependent
            LOGGER.debug("Error closing Redis status client", exc_info=True)
        self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def available(self) -> bool:
        return self._ensure_client() is not None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def redis_key(self) -> str:
        return f"{self._prefix}:{self._namespace}:{self._key}"

    def publish(self, status: BridgeStatus) -> bool:
        """Persist and broadcast ``status``; returns ``False`` when Redis is unavailable."""

        client = self._ensure_client()
        if client is None:
            return False
        payload = self.serialize(status)
        try:
            if self._ttl > 0:
                client.set(self.redis_key, payload, ex=self._ttl)
            else:
                client.set(self.redis_key, payload)
            if self._channel:
                client.publish(self._channel, payload)
        except RedisError as exc:  # pragma: no cover - network dependent
            self._last_error = f"Failed to publish bridge status: {exc}"
            LOGGER.debug("Failed to publish bridge status to Redis: %s", exc)
            self.close()
            return False
        self._last_error = None
        return True

    def clear(self) -> None:
        client = self._ensure_client()
        if client is None:
            return
        try:
            client.delete(self.redis_key)
        except RedisError:  # pragma: no cover - network dependent
            LOGGER.debug("Failed to clear bridge status key from Redis")

    @staticmethod
    def serialize(status: BridgeStatus, metadata: Optional[Mapping[str, Any]] = None) -> str:
        payload = {
            "status": status.to_payload(
                origin="hls-bridge",
                updated_at=datetime.now(timezone.utc).isoformat(),
            ),
            "metadata": dict(metadata or {}),
        }
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


__all__ = ["BridgeStatus", "StatusBroadcaster"]
