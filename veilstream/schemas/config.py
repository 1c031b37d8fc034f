"""Configuration schemas for the proxy, its upstream, and the HTTP server.

Loaded from defaults.toml by veilstream.settings. All values are
read-only inputs to the mode selector, the chunker, and the sequencer.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProxyConfig(BaseModel):
    """Behaviour of the phased streaming emitter."""

    reasoning_enabled: bool = Field(
        default=True, description="Emit phase status frames as reasoning_content"
    )
    max_fragment_length: int = Field(
        default=32, ge=1, description="Maximum characters per content frame"
    )
    passthrough_connecting_frame: bool = Field(
        default=False,
        description="Send a single Connecting frame in passthrough mode",
    )
    deadline_seconds: float = Field(
        default=120.0, gt=0, description="Deadline for the upstream completion call"
    )


class UpstreamConfig(BaseModel):
    """LiteLLM routing information for the upstream model."""

    model: str = Field(default="openai/gpt-4o-mini", description="LiteLLM model identifier")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    api_key_env: str = Field(
        default="OPENAI_API_KEY", description="Environment variable holding the API key"
    )
    max_retries: int = Field(
        default=3, ge=1, le=10, description="Attempts for transient upstream failures"
    )


class ServerConfig(BaseModel):
    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8440, gt=0, lt=65536, description="Bind port")


class VeilstreamConfig(BaseModel):
    """Complete configuration for one proxy process."""

    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
