"""Per-client push channel."""
from __future__ import annotations

import asyncio
import itertools
import logging
from enum import Enum
from typing import Optional, Sequence

from co11y.errors import ClientBackpressureError, ClientClosedError

logger = logging.getLogger("co11y.connection")

_client_ids = itertools.count(1)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    ATTACHED = "attached"
    DETACHED = "detached"


class ClientConnection:
    """Bounded outbound queue of serialized frames for one push client.

    ``offer`` never blocks: a full queue raises ``ClientBackpressureError`` and
    the hub disconnects the client. ``close`` is the abort signal; it wakes a
    waiting ``next_frame`` without polling.
    """

    def __init__(self, max_pending: int = 256, initial_frames: Sequence[str] = ()):
        self.id = next(_client_ids)
        self.state = ConnectionState.CONNECTING
        self.dropped_reason: Optional[str] = None
        # Room for the attach backlog on top of the live budget.
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(
            maxsize=max(1, max_pending) + len(initial_frames)
        )
        for frame in initial_frames:
            self._queue.put_nowait(frame)

    def __repr__(self) -> str:
        return f"<ClientConnection id={self.id} state={self.state.value}>"

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.DETACHED

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def mark_attached(self) -> None:
        if self.state is ConnectionState.DETACHED:
            raise ClientClosedError(f"client {self.id} is already detached")
        self.state = ConnectionState.ATTACHED

    def offer(self, frame: str) -> None:
        if self.closed:
            raise ClientClosedError(f"client {self.id} is closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as exc:
            raise ClientBackpressureError(
                f"client {self.id} has {self._queue.qsize()} undelivered frames"
            ) from exc

    async def next_frame(self, timeout: Optional[float] = None) -> Optional[str]:
        """Wait for the next frame.

        Returns ``None`` once the connection is closed. Raises
        ``asyncio.TimeoutError`` when ``timeout`` elapses first.
        """
        if self.closed:
            return None
        frame = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        if frame is None or self.closed:
            return None
        return frame

    def close(self, reason: str = "closed") -> bool:
        """Close the channel; returns False when it was already closed."""
        if self.closed:
            return False
        self.state = ConnectionState.DETACHED
        self.dropped_reason = reason
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)
        logger.debug("Client %s closed (%s)", self.id, reason)
        return True
