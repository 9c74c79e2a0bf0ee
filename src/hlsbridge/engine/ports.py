"""Bounded allocator for RTP/RTCP port pairs on the relay address."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from ..exceptions import PortPoolExhaustedError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PortPair:
    rtp: int
    rtcp: int

    @classmethod
    def starting_at(cls, port: int) -> "PortPair":
        return cls(rtp=port, rtcp=port + 1)


class PortPool:
    """Hand out even/odd RTP/RTCP pairs from ``[start, end)``.

    Allocation walks forward from the last handed-out pair so a just-released
    pair is not immediately reused while FFmpeg may still hold the socket.
    """

    def __init__(self, start: int = 20000, end: int = 30000) -> None:
        first = start + (start % 2)
        if end - first < 2:
            raise ValueError(f"Port range {start}-{end} holds no RTP/RTCP pair")
        self._first = first
        self._end = end
        self._lock = Lock()
        self._in_use: set[int] = set()
        self._cursor = first

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------
    @property
    def capacity(self) -> int:
        return (self._end - self._first) // 2

    def allocate_pair(self) -> PortPair:
        with self._lock:
            for _ in range(self.capacity):
                port = self._cursor
                self._cursor = self._advance(port)
                if port not in self._in_use:
                    self._in_use.add(port)
                    LOGGER.debug("Allocated RTP/RTCP ports %d/%d", port, port + 1)
                    return PortPair.starting_at(port)
        raise PortPoolExhaustedError(
            f"All {self.capacity} port pairs in {self._first}-{self._end} are in use"
        )

    def release(self, pair: Optional[PortPair]) -> None:
        if pair is None:
            return
        with self._lock:
            if pair.rtp in self._in_use:
                self._in_use.discard(pair.rtp)
                LOGGER.debug("Released RTP/RTCP ports %d/%d", pair.rtp, pair.rtcp)

    def in_use(self) -> list[PortPair]:
        with self._lock:
            return [PortPair.starting_at(port) for port in sorted(self._in_use)]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _advance(self, port: int) -> int:
        following = port + 2
        if following + 1 >= self._end:
            return self._first
        return following


__all__ = ["PortPair", "PortPool"]
