"""Scoped stream writer over a flushable transport.

The writer owns the transport's flush capability for the lifetime of one
CompletionStream. Every frame is written and flushed before ``write``
returns, and the transport is released on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

from veilstream.errors import PeerDisconnected, TransportUnsupported
from veilstream.streaming.encoder import SSE_HEADERS

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Byte sink for one streamed HTTP response.

    ``disconnected`` is set by the transport as soon as it learns the peer
    went away, even when no write is in progress.
    """

    supports_flush: bool
    disconnected: asyncio.Event

    async def open(self, headers: dict[str, str]) -> None: ...

    async def send(self, data: bytes) -> None: ...

    async def flush(self) -> None: ...

    async def close(self) -> None: ...


class StreamWriter:
    """Async context manager that writes SSE frames to a transport.

    Usage::

        async with StreamWriter(transport) as writer:
            await writer.write(frame)

    Raises TransportUnsupported on entry if the transport cannot flush.
    A failed write marks the peer as gone and raises PeerDisconnected;
    no further writes reach the transport after that.
    """

    def __init__(
        self,
        transport: Transport,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._transport = transport
        self._headers = dict(headers or SSE_HEADERS)
        self._broken = False
        self._frames_written = 0

    @property
    def peer_gone(self) -> asyncio.Event:
        """Event set once the client is known to be disconnected."""
        return self._transport.disconnected

    @property
    def frames_written(self) -> int:
        return self._frames_written

    async def __aenter__(self) -> StreamWriter:
        if not getattr(self._transport, "supports_flush", False):
            raise TransportUnsupported(
                f"{type(self._transport).__name__} has no flush primitive"
            )
        try:
            await self._transport.open(self._headers)
        except (OSError, PeerDisconnected) as e:
            self._mark_broken()
            raise PeerDisconnected("Peer disconnected before the stream opened") from e
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._broken or self.peer_gone.is_set():
            return
        try:
            await self._transport.close()
        except (OSError, PeerDisconnected):
            logger.debug("Peer disconnected while closing the stream")

    async def write(self, frame: bytes) -> None:
        """Send one frame and flush it to the peer."""
        if self._broken or self.peer_gone.is_set():
            self._broken = True
            raise PeerDisconnected("Peer is gone; write skipped")
        try:
            await self._transport.send(frame)
            await self._transport.flush()
        except (OSError, PeerDisconnected) as e:
            self._mark_broken()
            raise PeerDisconnected("Peer disconnected during write") from e
        self._frames_written += 1

    def _mark_broken(self) -> None:
        self._broken = True
        self.peer_gone.set()
