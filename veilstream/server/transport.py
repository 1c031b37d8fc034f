"""ASGI transport and response class for phased SSE streams.

Each flush becomes one ``http.response.body`` message, so every frame
reaches the client as soon as it is written. A background listener
watches ``receive`` for ``http.disconnect`` and flags the transport, which
lets the sequencer cancel in-flight collaborator calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.background import BackgroundTask
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from veilstream.errors import PeerDisconnected, TransportUnsupported
from veilstream.schemas.chat import ChatCompletionRequest
from veilstream.schemas.streaming import StreamMode
from veilstream.streaming.encoder import SSE_HEADERS
from veilstream.streaming.sequencer import PhaseSequencer

logger = logging.getLogger(__name__)


def scope_supports_streaming(scope: Scope) -> bool:
    """Whether the connection can carry an incrementally flushed body.

    HTTP/1.0 has no chunked transfer encoding, so the body could only be
    delivered once the connection closes.
    """
    return scope.get("http_version", "1.1") != "1.0"


class ASGITransport:
    """Transport that writes frames through an ASGI ``send`` callable."""

    def __init__(self, send: Send, *, supports_flush: bool = True) -> None:
        self._send = send
        self._pending: list[bytes] = []
        self.supports_flush = supports_flush
        self.disconnected = asyncio.Event()

    async def open(self, headers: dict[str, str]) -> None:
        raw_headers = [
            (key.lower().encode("latin-1"), value.encode("latin-1"))
            for key, value in headers.items()
        ]
        await self._emit(
            {"type": "http.response.start", "status": 200, "headers": raw_headers}
        )

    async def send(self, data: bytes) -> None:
        self._pending.append(data)

    async def flush(self) -> None:
        body = b"".join(self._pending)
        self._pending.clear()
        await self._emit({"type": "http.response.body", "body": body, "more_body": True})

    async def close(self) -> None:
        await self._emit({"type": "http.response.body", "body": b"", "more_body": False})

    async def _emit(self, message: dict[str, Any]) -> None:
        if self.disconnected.is_set():
            raise PeerDisconnected("Client already disconnected")
        try:
            await self._send(message)
        except OSError as e:
            self.disconnected.set()
            raise PeerDisconnected("Client disconnected") from e


async def listen_for_disconnect(receive: Receive, disconnected: asyncio.Event) -> None:
    """Set ``disconnected`` when the server reports the client went away."""
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            disconnected.set()
            return


BufferedFallback = Callable[[ChatCompletionRequest], Awaitable[Response]]


class SSEResponse(Response):
    """Response that runs the phase sequencer while the client listens.

    If the connection turns out to have no flush primitive, nothing has
    been sent yet, so ``fallback`` renders the request as a buffered
    response instead.
    """

    media_type = "text/event-stream"

    def __init__(
        self,
        sequencer: PhaseSequencer,
        mode: StreamMode,
        request: ChatCompletionRequest,
        fallback: BufferedFallback | None = None,
        background: BackgroundTask | None = None,
    ) -> None:
        self.sequencer = sequencer
        self.mode = mode
        self.request = request
        self.fallback = fallback
        self.status_code = 200
        self.background = background
        self.init_headers(SSE_HEADERS)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        transport = ASGITransport(send, supports_flush=scope_supports_streaming(scope))
        listener = asyncio.create_task(
            listen_for_disconnect(receive, transport.disconnected)
        )
        try:
            await self.sequencer.stream(self.mode, self.request, transport)
        except TransportUnsupported:
            if self.fallback is None:
                raise
            logger.info("Connection cannot stream; sending a buffered response")
            response = await self.fallback(self.request)
            await response(scope, receive, send)
        finally:
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass

        if self.background is not None:
            await self.background()
