"""
Tests for the RealtimeClient wrapper around the OpenAI Realtime WebSocket.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from voice_gateway.bot.realtime_api import RealtimeClient


class FakeConnection:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self, frames=None, pong=True, error=None):
        self.frames = list(frames or [])
        self.pong = pong
        self.error = error
        self.sent = []
        self.closed = False
        self.transport = MagicMock()
        self.transport.get_extra_info.return_value = None
        self.in_send = False
        self.overlapped = False

    async def send(self, message):
        if self.in_send:
            self.overlapped = True
        self.in_send = True
        await asyncio.sleep(0.01)
        self.sent.append(message)
        self.in_send = False

    async def ping(self):
        waiter = asyncio.get_running_loop().create_future()
        if self.pong:
            waiter.set_result(0.0)
        return waiter

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame
        if self.error:
            raise self.error


async def connected_client(connection):
    client = RealtimeClient("sk-test", "wss://example.test/v1/realtime?model=m")
    with patch("voice_gateway.bot.realtime_api.websockets.connect", new=AsyncMock(return_value=connection)):
        assert await client.connect()
    return client


@pytest.mark.asyncio
async def test_connect_sends_auth_headers():
    connection = FakeConnection()
    mock_connect = AsyncMock(return_value=connection)
    client = RealtimeClient("sk-test", "wss://example.test/v1/realtime?model=m")

    with patch("voice_gateway.bot.realtime_api.websockets.connect", new=mock_connect):
        assert await client.connect() is True

    args, kwargs = mock_connect.call_args
    assert args[0] == "wss://example.test/v1/realtime?model=m"
    assert kwargs["additional_headers"] == {
        "Authorization": "Bearer sk-test",
        "OpenAI-Beta": "realtime=v1",
    }
    assert kwargs["ping_interval"] is None
    assert client.is_connected


@pytest.mark.asyncio
async def test_connect_failure_returns_false():
    client = RealtimeClient("sk-test", "wss://example.test")
    with patch("voice_gateway.bot.realtime_api.websockets.connect", new=AsyncMock(side_effect=OSError("refused"))):
        assert await client.connect() is False
    assert not client.is_connected


@pytest.mark.asyncio
async def test_connect_timeout_returns_false():
    async def never_connects(*args, **kwargs):
        await asyncio.sleep(1)

    client = RealtimeClient("sk-test", "wss://example.test")
    with patch("voice_gateway.bot.realtime_api.CONNECTION_TIMEOUT", 0.01), \
            patch("voice_gateway.bot.realtime_api.websockets.connect", new=never_connects):
        assert await client.connect() is False


@pytest.mark.asyncio
async def test_send_event_requires_connection():
    client = RealtimeClient("sk-test", "wss://example.test")
    assert await client.send_event('{"type": "input_audio_buffer.commit"}') is False


@pytest.mark.asyncio
async def test_send_event_delivers_message():
    connection = FakeConnection()
    client = await connected_client(connection)

    assert await client.send_event('{"type": "response.create"}') is True
    assert connection.sent == ['{"type": "response.create"}']


@pytest.mark.asyncio
async def test_concurrent_sends_are_serialized():
    connection = FakeConnection()
    client = await connected_client(connection)

    results = await asyncio.gather(*(client.send_event(f'{{"n": {i}}}') for i in range(10)))

    assert all(results)
    assert len(connection.sent) == 10
    assert not connection.overlapped


@pytest.mark.asyncio
async def test_send_on_closed_connection_marks_inactive():
    connection = FakeConnection()
    client = await connected_client(connection)
    connection.send = AsyncMock(side_effect=ConnectionClosedOK(None, None))

    assert await client.send_event("{}") is False
    assert not client.is_connected


@pytest.mark.asyncio
async def test_messages_yields_text_frames_only():
    connection = FakeConnection(frames=['{"type": "session.created"}', b"\x00\x01", '{"type": "response.done"}'])
    client = await connected_client(connection)

    received = [message async for message in client.messages()]

    assert received == ['{"type": "session.created"}', '{"type": "response.done"}']
    assert not client.is_connected


@pytest.mark.asyncio
async def test_messages_ends_on_abnormal_close():
    connection = FakeConnection(frames=['{"type": "session.created"}'], error=ConnectionClosedError(None, None))
    client = await connected_client(connection)

    received = [message async for message in client.messages()]

    assert received == ['{"type": "session.created"}']
    assert not client.is_connected


@pytest.mark.asyncio
async def test_ping():
    client = await connected_client(FakeConnection())
    assert await client.ping() is True


@pytest.mark.asyncio
async def test_ping_without_pong_fails():
    client = await connected_client(FakeConnection(pong=False))
    with patch("voice_gateway.bot.realtime_api.PING_TIMEOUT", 0.01):
        assert await client.ping() is False
    assert not client.is_connected


@pytest.mark.asyncio
async def test_close_and_abort():
    connection = FakeConnection()
    client = await connected_client(connection)

    await client.close()
    assert connection.closed
    assert not client.is_connected
    assert await client.connect() is False

    client.abort()
    connection.transport.abort.assert_called_once()
