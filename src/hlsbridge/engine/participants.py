"""Per-client producer slots tracked by the bridge context."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..media.codecs import MediaKind
from .router import Producer


@dataclass(eq=False)
class ProducerSession:
    """At most one video and one audio producer for one client."""

    client_id: str
    video: Optional[Producer] = None
    audio: Optional[Producer] = None
    live_key: Optional[str] = None

    @property
    def empty(self) -> bool:
        return self.video is None and self.audio is None

    def slot(self, kind: MediaKind) -> Optional[Producer]:
        return self.video if kind is MediaKind.VIDEO else self.audio

    def assign(self, kind: MediaKind, producer: Optional[Producer]) -> Optional[Producer]:
        """Put ``producer`` into the slot for ``kind``; returns what it replaced."""

        previous = self.slot(kind)
        if kind is MediaKind.VIDEO:
            self.video = producer
        else:
            self.audio = producer
        return previous

    def discard(self, producer_id: str) -> bool:
        removed = False
        if self.video is not None and self.video.id == producer_id:
            self.video = None
            removed = True
        if self.audio is not None and self.audio.id == producer_id:
            self.audio = None
            removed = True
        return removed

    @property
    def session_key(self) -> Optional[str]:
        """Key of this client's per-producer HLS session: video id, else audio id."""

        if self.video is not None:
            return str(self.video.id)
        if self.audio is not None:
            return str(self.audio.id)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "video": self.video.id if self.video else None,
            "audio": self.audio.id if self.audio else None,
            "live_key": self.live_key,
        }


__all__ = ["ProducerSession"]
