"""Server-Sent Events frame encoder.

Turns phases, content fragments and upstream deltas into
``data: <json>\\n\\n`` frames in the chat.completion.chunk shape. Pure
functions over a CompletionStream: no I/O, and the only state touched is
the stream's frame counter and terminal flag.
"""

from __future__ import annotations

import json
from collections.abc import Mapping

from veilstream.errors import EncodingInvariantViolation
from veilstream.schemas.streaming import (
    ChunkChoice,
    ChunkDelta,
    CompletionChunk,
    CompletionStream,
    Phase,
)

DONE_FRAME = b"data: [DONE]\n\n"

SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def encode_phase(stream: CompletionStream, phase: Phase) -> bytes:
    """Encode a status phase as a reasoning_content frame."""
    return _encode(stream, ChunkDelta(reasoning_content=phase.message))


def encode_content(stream: CompletionStream, text: str) -> bytes:
    """Encode one fragment of the final answer as a content frame."""
    if not text:
        raise EncodingInvariantViolation("Refusing to encode an empty content frame")
    return _encode(stream, ChunkDelta(content=text))


def encode_delta(stream: CompletionStream, delta: Mapping[str, object]) -> bytes:
    """Re-tag an upstream delta with the local stream identity.

    The delta must carry exactly one of ``reasoning_content`` or ``content``.
    """
    reasoning = delta.get("reasoning_content")
    content = delta.get("content")
    if reasoning and content:
        raise EncodingInvariantViolation(
            "A frame cannot carry both reasoning and content text"
        )
    if not reasoning and not content:
        raise EncodingInvariantViolation("Refusing to encode an empty delta")
    if reasoning:
        return _encode(stream, ChunkDelta(reasoning_content=str(reasoning)))
    return _encode(stream, ChunkDelta(content=str(content)))


def encode_terminal(stream: CompletionStream) -> bytes:
    """Encode the single frame carrying finish_reason="stop"."""
    frame = _encode(stream, ChunkDelta(), finish_reason="stop")
    stream.terminal = True
    return frame


def _encode(
    stream: CompletionStream,
    delta: ChunkDelta,
    finish_reason: str | None = None,
) -> bytes:
    if stream.terminal:
        raise EncodingInvariantViolation(
            f"Stream {stream.id} already ended; no further frames allowed"
        )
    if delta.reasoning_content is not None and delta.content is not None:
        raise EncodingInvariantViolation(
            "A frame cannot carry both reasoning and content text"
        )

    chunk = CompletionChunk(
        id=stream.id,
        created=stream.created,
        model=stream.model,
        choices=[ChunkChoice(delta=delta, finish_reason=finish_reason)],
    )
    # json.dumps escapes quotes and every control character, so no payload
    # can contain the blank line that terminates an SSE frame.
    data = chunk.model_dump()
    try:
        frame = _frame(data, ensure_ascii=False)
    except UnicodeEncodeError:
        # Lone surrogates have no UTF-8 form; ship them as \uXXXX escapes
        frame = _frame(data, ensure_ascii=True)
    stream.frame_index += 1
    return frame


def _frame(data: dict, *, ensure_ascii: bool) -> bytes:
    payload = json.dumps(data, ensure_ascii=ensure_ascii, separators=(",", ":"))
    return f"data: {payload}\n\n".encode("utf-8")
