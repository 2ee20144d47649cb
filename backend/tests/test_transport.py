"""Tests for the SSE live transport."""

import pytest

from textstream.models.stream import Increment
from textstream.services.errors import TransportError
from textstream.services.transport import SSETransport


async def _collect(transport: SSETransport) -> list:
    return [frame async for frame in transport.events()]


async def test_events_frame_deltas_then_done():
    transport = SSETransport("abc")
    await transport.send(Increment(text="Hi"))
    await transport.close()

    frames = await _collect(transport)

    assert frames == [
        'event: start\ndata: {"stream_id":"abc"}\n\n',
        'event: delta\ndata: {"text":"Hi","reasoning":""}\n\n',
        'event: done\ndata: {"stream_id":"abc"}\n\n',
    ]


async def test_close_with_error_sends_error_event():
    transport = SSETransport("abc")
    await transport.close("Timeout after 1.0s")

    frames = await _collect(transport)

    assert frames[-1] == 'event: error\ndata: {"stream_id":"abc","error":"Timeout after 1.0s"}\n\n'


async def test_send_after_disconnect_raises():
    transport = SSETransport("abc")
    transport.disconnect()

    with pytest.raises(TransportError):
        await transport.send(Increment(text="lost"))


async def test_abandoned_response_marks_disconnected():
    transport = SSETransport("abc")
    events = transport.events()
    await events.__anext__()

    await events.aclose()

    assert transport.disconnected
    with pytest.raises(TransportError):
        await transport.send(Increment(text="nobody listening"))
