"""FastAPI application exposing the OpenAI-compatible proxy endpoint.

POST /v1/chat/completions picks a StreamMode per request and either
streams phased SSE frames or returns one buffered chat.completion
object. Failure detail stays in the log; clients only ever see a fixed
message.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from veilstream import __version__
from veilstream.errors import CollaboratorFailure, DeadlineExceeded
from veilstream.providers.base import CompletionClient, PIIEngine
from veilstream.schemas.chat import ChatCompletionRequest
from veilstream.schemas.config import VeilstreamConfig
from veilstream.schemas.streaming import BufferedResult, StreamMode, new_stream_id
from veilstream.server.transport import SSEResponse, scope_supports_streaming
from veilstream.streaming.modes import select_mode
from veilstream.streaming.sequencer import PhaseSequencer

logger = logging.getLogger(__name__)

PROCESSING_ERROR_MESSAGE = "A processing error occurred"


def create_app(
    config: VeilstreamConfig | None = None,
    pii_engine: PIIEngine | None = None,
    client: CompletionClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to the regex PII engine and the LiteLLM client
    built from ``config``. Tests inject fakes instead.
    """
    config = config or VeilstreamConfig()
    if pii_engine is None:
        from veilstream.pii.regex_engine import RegexPIIEngine

        pii_engine = RegexPIIEngine()
    if client is None:
        from veilstream.providers.litellm_client import LiteLLMCompletionClient

        client = LiteLLMCompletionClient(config.upstream)

    sequencer = PhaseSequencer(
        pii_engine,
        client,
        config.proxy,
        default_model=config.upstream.model,
    )

    app = FastAPI(
        title="Veilstream",
        description="Privacy-preserving LLM proxy with live reasoning status",
        version=__version__,
    )
    app.state.config = config
    app.state.sequencer = sequencer

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    @app.get("/v1/models")
    async def list_models() -> dict:
        """List the single upstream model this proxy serves."""
        return {
            "object": "list",
            "data": [
                {
                    "id": config.upstream.model,
                    "object": "model",
                    "owned_by": "veilstream",
                }
            ],
        }

    @app.post("/v1/chat/completions")
    async def chat_completions(body: ChatCompletionRequest, request: Request):
        """OpenAI-compatible chat completion endpoint."""
        mode = select_mode(
            stream_requested=body.stream,
            reasoning_enabled=config.proxy.reasoning_enabled,
            supports_streaming=scope_supports_streaming(request.scope),
        )
        logger.debug("Selected %s for %s", mode, request.url.path)

        if mode != StreamMode.BUFFERED_RESPONSE:
            return SSEResponse(sequencer, mode, body, fallback=buffered)
        return await buffered(body)

    async def buffered(body: ChatCompletionRequest) -> JSONResponse:
        try:
            result = await sequencer.run_buffered(body)
        except DeadlineExceeded:
            logger.exception("Buffered request exceeded its deadline")
            return _error_response(504, "timeout")
        except CollaboratorFailure as e:
            logger.exception("Buffered request failed (%s)", e.code)
            return _error_response(502, "upstream_error")

        return JSONResponse(_completion_body(result, body.model or config.upstream.model))

    return app


def _completion_body(result: BufferedResult, model: str) -> dict:
    """Render a BufferedResult as a chat.completion object."""
    return {
        "id": new_stream_id(),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": result.content},
                "finish_reason": "stop",
            }
        ],
        "pii_findings": {"count": result.findings_count},
    }


def _error_response(status_code: int, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": PROCESSING_ERROR_MESSAGE, "type": error_type}},
    )
