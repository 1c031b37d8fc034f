"""OpenAI-compatible chat completion request schema."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatCompletionRequest(BaseModel):
    """Incoming chat completion request.

    Unknown OpenAI parameters (temperature, tools, ...) are kept here; the
    completion client decides which of them reach the upstream call.
    """

    model_config = ConfigDict(extra="allow")

    model: str = Field(default="", description="Requested model (empty = configured default)")
    messages: list[dict[str, Any]] = Field(
        default_factory=list, description="Conversation messages in OpenAI format"
    )
    stream: bool = Field(default=False, description="Whether the client asked for SSE")

    def upstream_params(self) -> dict[str, Any]:
        """Extra OpenAI parameters to forward to the upstream call."""
        return dict(self.model_extra or {})
