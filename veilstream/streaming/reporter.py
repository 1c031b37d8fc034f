"""Failure reporting for in-progress streams.

Any pipeline failure ends the stream at the protocol level the same way:
one fixed status frame, the terminal frame, then the end sentinel. The
failure detail goes to the log, never to the client.
"""

from __future__ import annotations

import logging

from veilstream.errors import EncodingInvariantViolation, PeerDisconnected
from veilstream.schemas.streaming import CompletionStream, Phase, StreamOutcome
from veilstream.streaming.encoder import DONE_FRAME, encode_phase, encode_terminal
from veilstream.streaming.writer import StreamWriter

logger = logging.getLogger(__name__)


def error_code(error: BaseException) -> str:
    """Internal code for an error, used in logs only."""
    return getattr(error, "code", None) or type(error).__name__


class ErrorReporter:
    """Turns a failure into a terminal-safe frame sequence."""

    async def report(
        self,
        writer: StreamWriter,
        stream: CompletionStream,
        error: BaseException,
    ) -> StreamOutcome:
        """Close the stream cleanly after a failure.

        Returns:
            DISCONNECTED when the peer is gone (nothing is written),
            ABORTED for encoding invariant violations (nothing is written),
            FAILED once the error status and terminal frames were sent.
        """
        if isinstance(error, PeerDisconnected):
            logger.info("Stream %s: peer disconnected, cancelling pipeline", stream.id)
            return StreamOutcome.DISCONNECTED

        if isinstance(error, EncodingInvariantViolation):
            logger.error(
                "Stream %s aborted: encoding invariant violated",
                stream.id,
                exc_info=error,
            )
            return StreamOutcome.ABORTED

        code = error_code(error)
        logger.error("Stream %s failed (%s)", stream.id, code, exc_info=error)

        try:
            await writer.write(encode_phase(stream, Phase.error()))
            await writer.write(encode_terminal(stream))
            await writer.write(DONE_FRAME)
        except PeerDisconnected:
            logger.info("Stream %s: peer left while reporting failure", stream.id)
            return StreamOutcome.DISCONNECTED
        except EncodingInvariantViolation:
            logger.exception("Stream %s aborted while reporting failure", stream.id)
            return StreamOutcome.ABORTED
        return StreamOutcome.FAILED
