"""Tests for veilstream.streaming.writer: scoped transport writes."""

from __future__ import annotations

import pytest
from conftest import RecordingTransport

from veilstream.errors import PeerDisconnected, TransportUnsupported
from veilstream.streaming.encoder import SSE_HEADERS
from veilstream.streaming.writer import StreamWriter, Transport


class TestStreamWriter:
    def test_recording_transport_matches_protocol(self):
        assert isinstance(RecordingTransport(), Transport)

    @pytest.mark.asyncio
    async def test_opens_with_sse_headers(self, transport):
        async with StreamWriter(transport):
            pass
        assert transport.headers == SSE_HEADERS

    @pytest.mark.asyncio
    async def test_each_write_is_flushed(self, transport):
        async with StreamWriter(transport) as writer:
            await writer.write(b"data: 1\n\n")
            assert transport.frames == [b"data: 1\n\n"]
            await writer.write(b"data: 2\n\n")
            assert transport.frames == [b"data: 1\n\n", b"data: 2\n\n"]
            assert writer.frames_written == 2

    @pytest.mark.asyncio
    async def test_released_on_success(self, transport):
        async with StreamWriter(transport) as writer:
            await writer.write(b"x")
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_released_on_error(self, transport):
        with pytest.raises(RuntimeError):
            async with StreamWriter(transport):
                raise RuntimeError("boom")
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_unsupported_transport_rejected_before_writing(self):
        transport = RecordingTransport(supports_flush=False)
        with pytest.raises(TransportUnsupported):
            async with StreamWriter(transport):
                pass
        assert transport.headers is None
        assert transport.frames == []

    @pytest.mark.asyncio
    async def test_write_failure_becomes_peer_disconnected(self):
        transport = RecordingTransport(fail_when=lambda data: b"2" in data)
        async with StreamWriter(transport) as writer:
            await writer.write(b"1")
            with pytest.raises(PeerDisconnected):
                await writer.write(b"2")
            assert writer.peer_gone.is_set()

            # Later writes never reach the transport
            with pytest.raises(PeerDisconnected):
                await writer.write(b"3")
        assert transport.frames == [b"1"]
        assert transport.closed is False

    @pytest.mark.asyncio
    async def test_signalled_disconnect_stops_writes(self, transport):
        async with StreamWriter(transport) as writer:
            transport.disconnected.set()
            with pytest.raises(PeerDisconnected):
                await writer.write(b"late")
        assert transport.frames == []
