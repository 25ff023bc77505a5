import asyncio
import base64
import json
import logging

import pytest
from starlette.websockets import WebSocketState

from voice_gateway.config.settings import Settings


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class MockWebSocket:
    """A carrier websocket mock that records sent messages."""

    def __init__(self, incoming=None):
        self.sent_messages = []
        self.incoming = list(incoming or [])
        self.client_state = WebSocketState.CONNECTED
        self.client = None
        self.accepted = False
        self.closed = False

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        """Record the sent message."""
        if self.client_state != WebSocketState.CONNECTED:
            raise RuntimeError("WebSocket is not connected")
        self.sent_messages.append(text)

    async def receive_text(self):
        from fastapi import WebSocketDisconnect

        if not self.incoming:
            raise WebSocketDisconnect(code=1000)
        return self.incoming.pop(0)

    async def close(self, code=1000):
        self.closed = True
        self.client_state = WebSocketState.DISCONNECTED

    def sent_json(self):
        return [json.loads(message) for message in self.sent_messages]

    def sent_events(self):
        return [message["event"] for message in self.sent_json()]


class FakeRealtimeClient:
    """Stands in for RealtimeClient; records every event sent to the AI channel."""

    def __init__(self, connect_result=True, send_result=True, ping_result=True):
        self.connect_result = connect_result
        self.send_result = send_result
        self.ping_result = ping_result
        self.sent = []
        self.connected = False
        self.closed = False
        self.aborted = False
        self.inbox = asyncio.Queue()

    async def connect(self):
        self.connected = self.connect_result
        return self.connect_result

    async def send_event(self, message):
        if not self.send_result:
            return False
        self.sent.append(json.loads(message))
        return True

    async def messages(self):
        while True:
            message = await self.inbox.get()
            if message is None:
                return
            yield message

    def push(self, message):
        """Queue a frame as if the Realtime API had sent it; None ends the stream."""
        self.inbox.put_nowait(None if message is None else json.dumps(message))

    async def ping(self):
        return self.ping_result

    async def close(self):
        self.closed = True

    def abort(self):
        self.aborted = True

    def sent_types(self):
        return [event["type"] for event in self.sent]


def start_frame(stream_sid="SS1", call_sid="CA1", parameters=None):
    return json.dumps({
        "event": "start",
        "sequenceNumber": "1",
        "streamSid": stream_sid,
        "start": {
            "streamSid": stream_sid,
            "accountSid": "AC123",
            "callSid": call_sid,
            "tracks": ["inbound"],
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
            "customParameters": parameters or {},
        },
    })


def media_frame(payload=b"\xff" * 160, stream_sid="SS1", chunk="1"):
    return json.dumps({
        "event": "media",
        "streamSid": stream_sid,
        "media": {
            "track": "inbound",
            "chunk": chunk,
            "timestamp": "0",
            "payload": base64.b64encode(payload).decode("utf-8"),
        },
    })


def stop_frame(stream_sid="SS1", call_sid="CA1"):
    return json.dumps({
        "event": "stop",
        "streamSid": stream_sid,
        "stop": {"accountSid": "AC123", "callSid": call_sid},
    })


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="sk-test",
        twilio_account_sid="AC123",
        close_grace_seconds=0.5,
        keepalive_interval_seconds=30,
    )


@pytest.fixture
def carrier():
    return MockWebSocket()


@pytest.fixture
def realtime_client():
    return FakeRealtimeClient()
