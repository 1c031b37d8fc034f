"""LiteLLM-backed completion client.

Routes the obfuscated request to the configured upstream model through
LiteLLM's unified API. Handles credential lookup, timeouts, and retry
with exponential backoff. All final failures surface as
CollaboratorFailure so the sequencer can report them uniformly.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from veilstream.errors import CollaboratorFailure, DeadlineExceeded
from veilstream.providers.base import CompletionClient
from veilstream.schemas.chat import ChatCompletionRequest
from veilstream.schemas.config import UpstreamConfig

logger = logging.getLogger(__name__)

_BASE_BACKOFF = 1.0  # seconds

# OpenAI request parameters a client may set. Anything else in the body
# (routing, credentials, LiteLLM-only switches) never reaches the upstream call.
_FORWARDED_PARAMS = frozenset({
    "frequency_penalty",
    "logit_bias",
    "logprobs",
    "max_completion_tokens",
    "max_tokens",
    "parallel_tool_calls",
    "presence_penalty",
    "reasoning_effort",
    "response_format",
    "seed",
    "stop",
    "temperature",
    "tool_choice",
    "tools",
    "top_logprobs",
    "top_p",
    "user",
})

# Only valid together with stream=True
_STREAM_ONLY_PARAMS = frozenset({"stream_options"})

_TRANSIENT_ERRORS = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.APIConnectionError,
)


def _short_error_reason(error: Exception) -> str:
    """Map an upstream error to a short reason for log lines."""
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    return type(error).__name__


class LiteLLMCompletionClient(CompletionClient):
    """Upstream completion client powered by litellm.acompletion()."""

    def __init__(self, config: UpstreamConfig) -> None:
        self._config = config

    @property
    def model(self) -> str:
        return self._config.model

    async def complete(self, request: ChatCompletionRequest, *, timeout: float) -> str:
        kwargs = self._build_completion_kwargs(request, timeout)
        response = await self._call_with_retry(kwargs)
        return self._extract_content(response)

    async def stream(
        self, request: ChatCompletionRequest, *, timeout: float
    ) -> AsyncIterator[dict[str, str]]:
        kwargs = self._build_completion_kwargs(request, timeout, stream=True)
        response = await self._call_with_retry(kwargs)

        try:
            async for chunk in response:
                if not chunk.choices or not chunk.choices[0].delta:
                    continue
                delta = chunk.choices[0].delta
                reasoning = getattr(delta, "reasoning_content", None)
                content = getattr(delta, "content", None)
                if reasoning:
                    yield {"reasoning_content": reasoning}
                if content:
                    yield {"content": content}
        except TimeoutError as e:
            raise DeadlineExceeded("Upstream stream timed out") from e
        except litellm.APIError as e:
            raise CollaboratorFailure(
                f"Upstream stream from {self._config.model} broke: {_short_error_reason(e)}",
                code="completion_client",
            ) from e

    def _build_completion_kwargs(
        self, request: ChatCompletionRequest, timeout: float, *, stream: bool = False
    ) -> dict:
        """Build the kwargs dict for litellm.acompletion.

        Only allowlisted OpenAI parameters from the request are forwarded;
        stream-only ones are dropped from non-streamed calls.
        """
        allowed = _FORWARDED_PARAMS | _STREAM_ONLY_PARAMS if stream else _FORWARDED_PARAMS
        params = request.upstream_params()
        dropped = sorted(set(params) - allowed)
        if dropped:
            logger.debug("Not forwarding request parameters: %s", ", ".join(dropped))

        kwargs: dict = {
            **{key: value for key, value in params.items() if key in allowed},
            "model": self._config.model,
            "messages": request.messages,
            "timeout": float(timeout),
        }
        if stream:
            kwargs["stream"] = True

        # Read the key on every call so rotated credentials apply immediately
        api_key = os.environ.get(self._config.api_key_env, "")
        if api_key:
            kwargs["api_key"] = api_key

        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        return kwargs

    async def _call_with_retry(self, kwargs: dict):
        """Call litellm.acompletion with exponential backoff retry.

        Retries on transient errors (rate limits, server errors, timeouts).
        Non-retryable errors (auth, invalid request) fail immediately.

        Raises:
            DeadlineExceeded: If every attempt timed out.
            CollaboratorFailure: For any other final failure.
        """
        attempts = self._config.max_retries
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                return await litellm.acompletion(**kwargs)
            except (TimeoutError, litellm.Timeout) as e:
                last_error = e
            except litellm.AuthenticationError:
                raise CollaboratorFailure(
                    f"Authentication failed for {self._config.model}. "
                    f"Check that {self._config.api_key_env} is set correctly.",
                    code="completion_client",
                ) from None
            except litellm.BadRequestError as e:
                raise CollaboratorFailure(
                    f"Bad request to {self._config.model}", code="completion_client"
                ) from e
            except _TRANSIENT_ERRORS as e:
                last_error = e

            if attempt < attempts - 1:
                backoff = _BASE_BACKOFF * (2**attempt)
                logger.warning(
                    "Retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt + 1,
                    attempts,
                    self._config.model,
                    _short_error_reason(last_error),
                    backoff,
                )
                await asyncio.sleep(backoff)

        if isinstance(last_error, (TimeoutError, litellm.Timeout)):
            raise DeadlineExceeded(
                f"Model call to {self._config.model} timed out after {attempts} attempts"
            ) from last_error
        raise CollaboratorFailure(
            f"Model call to {self._config.model} failed after {attempts} attempts: "
            f"{_short_error_reason(last_error)}",
            code="completion_client",
        ) from last_error

    def _extract_content(self, response) -> str:
        """Extract text content from a LiteLLM response."""
        if not response.choices:
            return ""
        message = response.choices[0].message
        return (message.content or "") if message else ""
