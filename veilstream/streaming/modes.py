"""Response strategy selection."""

from __future__ import annotations

from veilstream.schemas.streaming import StreamMode


def select_mode(
    stream_requested: bool,
    reasoning_enabled: bool,
    supports_streaming: bool,
) -> StreamMode:
    """Pick the response strategy for one request.

    Streaming needs both a client that asked for it and a transport that
    can flush. Phase narration additionally needs reasoning enabled.
    """
    if not (stream_requested and supports_streaming):
        return StreamMode.BUFFERED_RESPONSE
    if reasoning_enabled:
        return StreamMode.REASONING_STREAM
    return StreamMode.PASSTHROUGH_STREAM
