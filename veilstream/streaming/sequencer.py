"""Phase sequencer: drives one request through the PII-aware pipeline.

Runs detection, the upstream call, and restoration strictly in order,
announcing each step to the client as a reasoning status frame before
the step starts. All state lives on the CompletionStream created for the
request; nothing is shared between concurrent requests.

Modes:
    REASONING_STREAM:   Securing → [Protected] → Waiting → [Restoring] → content → stop
    PASSTHROUGH_STREAM: [Connecting] → upstream deltas → stop
    BUFFERED_RESPONSE:  same pipeline, no frames, one BufferedResult
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from veilstream.errors import (
    CollaboratorFailure,
    DeadlineExceeded,
    PeerDisconnected,
    StreamError,
)
from veilstream.providers.base import CompletionClient, PIIEngine
from veilstream.schemas.chat import ChatCompletionRequest
from veilstream.schemas.config import ProxyConfig
from veilstream.schemas.streaming import (
    BufferedResult,
    CompletionStream,
    Phase,
    PhaseKind,
    StreamMode,
    StreamOutcome,
)
from veilstream.streaming.chunker import split_content
from veilstream.streaming.encoder import (
    DONE_FRAME,
    encode_content,
    encode_delta,
    encode_phase,
    encode_terminal,
)
from veilstream.streaming.reporter import ErrorReporter
from veilstream.streaming.writer import StreamWriter, Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Delta keys forwarded in passthrough mode, in emission order
_DELTA_KEYS = ("reasoning_content", "content")


def format_duration(seconds: float) -> str:
    """Format a duration as 850ms, 12s or 2m 5s."""
    ms = int(seconds * 1000)
    if ms < 1000:
        return f"{ms}ms"
    whole = ms // 1000
    if whole < 60:
        return f"{whole}s"
    return f"{whole // 60}m {whole % 60}s"


class PhaseSequencer:
    """Executes one request in the chosen StreamMode.

    A sequencer holds only its collaborators and configuration, so a
    single instance can serve many concurrent requests. Per-request state
    is created inside stream()/run_buffered() and discarded when they return.
    """

    def __init__(
        self,
        pii_engine: PIIEngine,
        client: CompletionClient,
        config: ProxyConfig,
        *,
        default_model: str = "",
        reporter: ErrorReporter | None = None,
    ) -> None:
        self._pii = pii_engine
        self._client = client
        self._config = config
        self._default_model = default_model
        self._reporter = reporter or ErrorReporter()

    # ── Streaming ─────────────────────────────────────────────

    async def stream(
        self,
        mode: StreamMode,
        request: ChatCompletionRequest,
        transport: Transport,
    ) -> StreamOutcome:
        """Stream one response over the transport.

        Recoverable failures never escape: they are reported in-band and
        the stream still ends with a terminal frame.

        Raises:
            TransportUnsupported: If the transport cannot flush. Raised
                before any phase runs, so the caller can fall back.
            ValueError: If mode is BUFFERED_RESPONSE.
        """
        handlers: dict[StreamMode, Callable[..., Awaitable[None]]] = {
            StreamMode.REASONING_STREAM: self._run_reasoning,
            StreamMode.PASSTHROUGH_STREAM: self._run_passthrough,
        }
        if mode not in handlers:
            raise ValueError(f"{mode} is not a streaming mode")

        stream = CompletionStream(model=request.model or self._default_model)
        started = time.monotonic()
        logger.info("Stream %s started (%s, model=%s)", stream.id, mode, stream.model)

        writer = StreamWriter(transport)
        try:
            async with writer:
                try:
                    await handlers[mode](stream, writer, request)
                    outcome = StreamOutcome.COMPLETED
                except Exception as e:
                    outcome = await self._reporter.report(writer, stream, e)
        except PeerDisconnected:
            outcome = StreamOutcome.DISCONNECTED

        logger.info(
            "Stream %s %s in %s (%d frames sent)",
            stream.id,
            outcome,
            format_duration(time.monotonic() - started),
            writer.frames_written,
        )
        return outcome

    async def _run_reasoning(
        self,
        stream: CompletionStream,
        writer: StreamWriter,
        request: ChatCompletionRequest,
    ) -> None:
        await self._emit_phase(stream, writer, Phase(kind=PhaseKind.SECURING))
        detection = await self._call(
            self._pii.detect(request), code="pii_engine", peer_gone=writer.peer_gone
        )
        findings = detection.findings

        protected = findings.count > 0
        if protected:
            await self._emit_phase(stream, writer, Phase.protected(findings.count))

        await self._emit_phase(stream, writer, Phase(kind=PhaseKind.WAITING))
        deadline = self._config.deadline_seconds
        answer = await self._call(
            self._client.complete(detection.request, timeout=deadline),
            code="completion_client",
            timeout=deadline,
            peer_gone=writer.peer_gone,
        )

        if protected:
            await self._emit_phase(stream, writer, Phase(kind=PhaseKind.RESTORING))
        content = await self._call(
            self._pii.restore(answer, findings), code="pii_engine", peer_gone=writer.peer_gone
        )
        del detection, findings

        for fragment in split_content(content, self._config.max_fragment_length):
            await writer.write(encode_content(stream, fragment))
        await self._finish(stream, writer)

    async def _run_passthrough(
        self,
        stream: CompletionStream,
        writer: StreamWriter,
        request: ChatCompletionRequest,
    ) -> None:
        detection = await self._call(
            self._pii.detect(request), code="pii_engine", peer_gone=writer.peer_gone
        )
        findings = detection.findings
        if self._config.passthrough_connecting_frame:
            await self._emit_phase(stream, writer, Phase(kind=PhaseKind.CONNECTING))

        # With findings, content is held back until it can be restored in
        # one piece: placeholders may straddle upstream chunk boundaries.
        hold_content = findings.count > 0
        collected: list[str] = []

        deadline = self._config.deadline_seconds
        loop = asyncio.get_running_loop()
        deadline_at = loop.time() + deadline

        upstream = self._client.stream(detection.request, timeout=deadline)
        async with contextlib.aclosing(upstream):
            while True:
                remaining = deadline_at - loop.time()
                if remaining <= 0:
                    raise DeadlineExceeded(f"Upstream stream exceeded {deadline}s")
                delta = await self._call(
                    anext(upstream, None),
                    code="completion_client",
                    timeout=remaining,
                    peer_gone=writer.peer_gone,
                )
                if delta is None:
                    break
                for key in _DELTA_KEYS:
                    text = delta.get(key)
                    if not text:
                        continue
                    if key == "content" and hold_content:
                        collected.append(text)
                    else:
                        await writer.write(encode_delta(stream, {key: text}))

        if collected:
            content = await self._call(
                self._pii.restore("".join(collected), findings),
                code="pii_engine",
                peer_gone=writer.peer_gone,
            )
            for fragment in split_content(content, self._config.max_fragment_length):
                await writer.write(encode_content(stream, fragment))
        del detection, findings
        await self._finish(stream, writer)

    async def _emit_phase(
        self, stream: CompletionStream, writer: StreamWriter, phase: Phase
    ) -> None:
        logger.debug("Stream %s: %s", stream.id, phase.kind)
        await writer.write(encode_phase(stream, phase))

    async def _finish(self, stream: CompletionStream, writer: StreamWriter) -> None:
        await writer.write(encode_terminal(stream))
        await writer.write(DONE_FRAME)

    # ── Buffered ──────────────────────────────────────────────

    async def run_buffered(self, request: ChatCompletionRequest) -> BufferedResult:
        """Run the full pipeline without emitting any frame.

        Raises:
            CollaboratorFailure: If detection, the upstream call, or
                restoration fails (DeadlineExceeded on timeout).
        """
        started = time.monotonic()
        detection = await self._call(self._pii.detect(request), code="pii_engine")
        deadline = self._config.deadline_seconds
        answer = await self._call(
            self._client.complete(detection.request, timeout=deadline),
            code="completion_client",
            timeout=deadline,
        )
        content = await self._call(
            self._pii.restore(answer, detection.findings), code="pii_engine"
        )
        logger.info(
            "Buffered response completed in %s",
            format_duration(time.monotonic() - started),
        )
        return BufferedResult(content=content, findings_count=detection.findings.count)

    # ── Collaborator calls ────────────────────────────────────

    async def _call(
        self,
        awaitable: Awaitable[T],
        *,
        code: str,
        timeout: float | None = None,
        peer_gone: asyncio.Event | None = None,
    ) -> T:
        """Await a collaborator call, bounded by a deadline and the peer.

        The call is cancelled if the deadline passes or the peer
        disconnects first. Collaborator exceptions are wrapped as
        CollaboratorFailure unless they already are StreamErrors.
        """
        task = asyncio.ensure_future(awaitable)
        waiters: set[asyncio.Future] = {task}
        gone_waiter = None
        if peer_gone is not None:
            gone_waiter = asyncio.ensure_future(peer_gone.wait())
            waiters.add(gone_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if gone_waiter is not None:
                gone_waiter.cancel()
            if not task.done():
                task.cancel()
                await _drain(task)

        if task in done:
            try:
                return task.result()
            except StreamError:
                raise
            except TimeoutError as e:
                raise DeadlineExceeded(f"{code} timed out") from e
            except Exception as e:
                raise CollaboratorFailure(f"{code} failed: {type(e).__name__}", code=code) from e

        if peer_gone is not None and peer_gone.is_set():
            raise PeerDisconnected(f"Peer disconnected while waiting on {code}")
        raise DeadlineExceeded(f"{code} exceeded {timeout}s")


async def _drain(task: asyncio.Future) -> None:
    """Wait for a cancelled task to unwind, keeping the caller's own cancellation."""
    try:
        await task
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            raise
    except Exception:
        logger.debug("Cancelled collaborator call raised while unwinding", exc_info=True)
