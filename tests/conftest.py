"""Shared fakes for streaming tests: transport, PII engine, completion client."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import pytest

from veilstream.providers.base import CompletionClient, PIIEngine
from veilstream.schemas.chat import ChatCompletionRequest
from veilstream.schemas.config import ProxyConfig
from veilstream.schemas.pii import Detection, Findings
from veilstream.streaming.sequencer import PhaseSequencer


class RecordingTransport:
    """In-memory transport that records every flushed frame.

    ``fail_when`` is called with each frame before it is sent; returning
    True simulates the client hanging up at that point.
    """

    def __init__(
        self,
        *,
        supports_flush: bool = True,
        fail_when: Callable[[bytes], bool] | None = None,
    ) -> None:
        self.supports_flush = supports_flush
        self.disconnected = asyncio.Event()
        self.fail_when = fail_when
        self.headers: dict[str, str] | None = None
        self.frames: list[bytes] = []
        self.closed = False
        self._pending: list[bytes] = []

    async def open(self, headers: dict[str, str]) -> None:
        self.headers = headers

    async def send(self, data: bytes) -> None:
        if self.fail_when is not None and self.fail_when(data):
            raise ConnectionResetError("client hung up")
        self._pending.append(data)

    async def flush(self) -> None:
        self.frames.append(b"".join(self._pending))
        self._pending.clear()

    async def close(self) -> None:
        self.closed = True

    @property
    def body(self) -> bytes:
        return b"".join(self.frames)


def parse_frames(raw: bytes) -> list:
    """Split an SSE body into JSON payloads; the sentinel becomes "[DONE]"."""
    events = []
    for block in raw.decode("utf-8").split("\n\n"):
        if not block:
            continue
        assert block.startswith("data: "), block
        payload = block[len("data: "):]
        events.append(payload if payload == "[DONE]" else json.loads(payload))
    return events


def reasoning_texts(events: list) -> list[str]:
    return [
        e["choices"][0]["delta"]["reasoning_content"]
        for e in events
        if isinstance(e, dict) and "reasoning_content" in e["choices"][0]["delta"]
    ]


def content_texts(events: list) -> list[str]:
    return [
        e["choices"][0]["delta"]["content"]
        for e in events
        if isinstance(e, dict) and "content" in e["choices"][0]["delta"]
    ]


class FakePIIEngine(PIIEngine):
    """PII engine with a fixed mapping; records calls and can be made to fail."""

    def __init__(
        self,
        mapping: dict[str, str] | None = None,
        *,
        detect_error: Exception | None = None,
        restore_error: Exception | None = None,
        restore_delay: float = 0.0,
    ) -> None:
        self.mapping = mapping or {}
        self.detect_error = detect_error
        self.restore_error = restore_error
        self.restore_delay = restore_delay
        self.detect_calls: list[ChatCompletionRequest] = []
        self.restore_calls: list[str] = []
        self.restore_cancelled = False

    async def detect(self, request: ChatCompletionRequest) -> Detection:
        self.detect_calls.append(request)
        if self.detect_error is not None:
            raise self.detect_error
        obfuscated = request.model_copy(deep=True)
        for message in obfuscated.messages:
            for placeholder, original in self.mapping.items():
                message["content"] = message["content"].replace(original, placeholder)
        return Detection(
            findings=Findings(count=len(self.mapping), mapping=self.mapping),
            request=obfuscated,
        )

    async def restore(self, content: str, findings: Findings) -> str:
        self.restore_calls.append(content)
        if self.restore_delay:
            try:
                await asyncio.sleep(self.restore_delay)
            except asyncio.CancelledError:
                self.restore_cancelled = True
                raise
        if self.restore_error is not None:
            raise self.restore_error
        for placeholder, original in findings.mapping.items():
            content = content.replace(placeholder, original)
        return content


class FakeCompletionClient(CompletionClient):
    """Completion client returning a canned answer or canned deltas."""

    def __init__(
        self,
        answer: str = "",
        *,
        deltas: list[dict[str, str]] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.answer = answer
        self.deltas = deltas
        self.error = error
        self.delay = delay
        self.requests: list[ChatCompletionRequest] = []
        self.timeouts: list[float] = []
        self.cancelled = False

    async def complete(self, request: ChatCompletionRequest, *, timeout: float) -> str:
        self.requests.append(request)
        self.timeouts.append(timeout)
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error is not None:
            raise self.error
        return self.answer

    async def stream(self, request: ChatCompletionRequest, *, timeout: float):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        for delta in self.deltas or []:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield delta


def make_request(content: str = "Hi there", *, stream: bool = True) -> ChatCompletionRequest:
    return ChatCompletionRequest(
        model="test-model",
        messages=[{"role": "user", "content": content}],
        stream=stream,
    )


def make_sequencer(
    pii: PIIEngine,
    client: CompletionClient,
    **config_overrides,
) -> PhaseSequencer:
    config = ProxyConfig(**config_overrides)
    return PhaseSequencer(pii, client, config, default_model="default-model")


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
