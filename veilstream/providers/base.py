"""Abstract collaborator interfaces consumed by the phase sequencer.

The sequencer interacts with PII handling and the upstream model
exclusively through these interfaces. It never calls a detection
library or a provider SDK directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from veilstream.schemas.chat import ChatCompletionRequest
from veilstream.schemas.pii import Detection, Findings


class PIIEngine(ABC):
    """Detects, obfuscates and restores sensitive data.

    Implementations must not mutate their arguments. Any failure may be
    raised as any exception; the sequencer reports all of them the same way.
    """

    @abstractmethod
    async def detect(self, request: ChatCompletionRequest) -> Detection:
        """Find PII in the request and return an obfuscated copy.

        Args:
            request: The client's request. Left untouched.

        Returns:
            Detection with the findings and the obfuscated request.
        """

    @abstractmethod
    async def restore(self, content: str, findings: Findings) -> str:
        """Replace placeholders in content with the original values.

        Safe to call with empty findings; content is then returned unchanged.
        """


class CompletionClient(ABC):
    """Performs the upstream model call.

    Retry policy, connection handling and credentials belong to the
    implementation. The sequencer treats each call as one unit of work.
    """

    @abstractmethod
    async def complete(self, request: ChatCompletionRequest, *, timeout: float) -> str:
        """Run a non-streamed completion and return the answer text.

        Raises:
            CollaboratorFailure: If the call fails after all retries.
            DeadlineExceeded: If the call times out.
        """

    async def stream(
        self, request: ChatCompletionRequest, *, timeout: float
    ) -> AsyncIterator[dict[str, str]]:
        """Yield upstream deltas as ``{"content": ...}`` or ``{"reasoning_content": ...}``.

        Default implementation falls back to non-streaming complete().
        Clients that support streaming should override this method.
        """
        content = await self.complete(request, timeout=timeout)
        if content:
            yield {"content": content}
