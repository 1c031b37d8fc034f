"""Error taxonomy for the streaming pipeline.

Recoverable failures (collaborator errors, deadlines) are absorbed by the
sequencer and reported to the client as a fixed status message. Transport
errors and encoding invariant violations end the stream without further
user-visible text.
"""

from __future__ import annotations


class StreamError(Exception):
    """Base class for all streaming pipeline errors."""


class TransportUnsupported(StreamError):
    """The transport has no flush primitive and cannot carry a stream."""


class PeerDisconnected(StreamError):
    """The client went away; nothing more can be written to this stream."""


class CollaboratorFailure(StreamError):
    """The PII engine or the completion client failed.

    ``code`` is an internal identifier for logs only. It is never placed
    in user-visible text.
    """

    def __init__(self, message: str, *, code: str = "collaborator") -> None:
        super().__init__(message)
        self.code = code


class DeadlineExceeded(CollaboratorFailure):
    """The completion client did not answer within the configured deadline."""

    def __init__(self, message: str = "Completion deadline exceeded") -> None:
        super().__init__(message, code="deadline_exceeded")


class EncodingInvariantViolation(StreamError):
    """A frame would break the wire contract. Indicates a programming error."""
