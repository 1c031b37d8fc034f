"""Streaming schemas for phased completion responses.

Defines the pipeline phases surfaced to the client, the per-request
CompletionStream identity, and the chat.completion.chunk wire frame
shared with consumers that already parse model "thinking" output.
"""

from __future__ import annotations

import time
import uuid
from enum import StrEnum

from pydantic import BaseModel, Field, model_serializer


class StreamMode(StrEnum):
    """Response strategy chosen once per request."""

    REASONING_STREAM = "reasoning_stream"
    PASSTHROUGH_STREAM = "passthrough_stream"
    BUFFERED_RESPONSE = "buffered_response"


class StreamOutcome(StrEnum):
    """How a streaming run ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    DISCONNECTED = "disconnected"
    ABORTED = "aborted"


class PhaseKind(StrEnum):
    """Pipeline stages surfaced to the user as status frames."""

    SECURING = "securing"
    PROTECTED = "protected"
    CONNECTING = "connecting"
    WAITING = "waiting"
    RESTORING = "restoring"
    ERROR = "error"


PHASE_MESSAGES: dict[PhaseKind, str] = {
    PhaseKind.SECURING: "🔒 Securing your request...",
    PhaseKind.PROTECTED: "🛡️ Protected {count} sensitive item(s)",
    PhaseKind.CONNECTING: "🔌 Connecting to model...",
    PhaseKind.WAITING: "⏳ Waiting for model response...",
    PhaseKind.RESTORING: "🔓 Restoring protected content...",
    PhaseKind.ERROR: "⚠️ A processing error occurred",
}


class Phase(BaseModel):
    """A single pipeline phase as shown to the client.

    Only PROTECTED carries a count.
    """

    kind: PhaseKind = Field(description="Which pipeline stage this is")
    count: int = Field(default=0, ge=0, description="Findings count (PROTECTED only)")

    @classmethod
    def protected(cls, count: int) -> Phase:
        return cls(kind=PhaseKind.PROTECTED, count=count)

    @classmethod
    def error(cls) -> Phase:
        return cls(kind=PhaseKind.ERROR)

    @property
    def message(self) -> str:
        """Human-readable status line, newline-terminated."""
        template = PHASE_MESSAGES[self.kind]
        if self.kind == PhaseKind.PROTECTED:
            template = template.format(count=self.count)
        return template + "\n"


def new_stream_id() -> str:
    """Allocate an OpenAI-style completion id."""
    return f"chatcmpl-{uuid.uuid4().hex}"


class CompletionStream(BaseModel):
    """Identity and progress of one streamed response.

    Owned by a single sequencer run. ``created`` is captured once so every
    frame of the stream carries the same timestamp.
    """

    id: str = Field(default_factory=new_stream_id, description="Stable stream id")
    model: str = Field(description="Model name reported in every frame")
    created: int = Field(
        default_factory=lambda: int(time.time()),
        description="Unix seconds, fixed for the whole stream",
    )
    frame_index: int = Field(default=0, ge=0, description="Frames encoded so far")
    terminal: bool = Field(default=False, description="True once the stop frame is encoded")


class ChunkDelta(BaseModel):
    """Delta payload of a frame: reasoning text, content text, or nothing."""

    reasoning_content: str | None = None
    content: str | None = None

    @model_serializer
    def _serialize(self) -> dict[str, str]:
        data: dict[str, str] = {}
        if self.reasoning_content is not None:
            data["reasoning_content"] = self.reasoning_content
        if self.content is not None:
            data["content"] = self.content
        return data


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: str | None = None


class CompletionChunk(BaseModel):
    """One chat.completion.chunk frame as sent on the wire."""

    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: list[ChunkChoice]


class BufferedResult(BaseModel):
    """Outcome of a non-streamed run: final content plus findings metadata."""

    content: str = Field(description="De-obfuscated final answer")
    findings_count: int = Field(ge=0, description="Number of PII items protected")
