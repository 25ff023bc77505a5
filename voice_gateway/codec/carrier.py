"""
Codec for the carrier's media-stream protocol (Twilio Media Streams).

Decoding turns one JSON text frame into one internal carrier event; encoding
builds the JSON frames the gateway sends back. Audio payloads are treated as
opaque bytes: they are base64-decoded on the way in and base64-encoded on the
way out, never inspected.
"""

import base64
import json
import time
from typing import Any, Dict, Optional

from pydantic import ValidationError

from voice_gateway.config.constants import (
    CARRIER_EVENT_CONNECTED,
    CARRIER_EVENT_MARK,
    CARRIER_EVENT_MEDIA,
    CARRIER_EVENT_START,
    CARRIER_EVENT_STOP,
)
from voice_gateway.exceptions import ProtocolDecodeError
from voice_gateway.models.events import (
    CarrierConnected,
    CarrierEvent,
    CarrierMark,
    CarrierMedia,
    CarrierStarted,
    CarrierStop,
)
from voice_gateway.models.session import AudioDirection, AudioFrame
from voice_gateway.models.twilio_schemas import (
    ConnectedMessage,
    MarkDetails,
    MarkMessage,
    MediaMessage,
    OutboundClearMessage,
    OutboundMarkMessage,
    OutboundMediaDetails,
    OutboundMediaMessage,
    StartMessage,
    StopMessage,
)

# Control events whose loss breaks the call lifecycle
FATAL_EVENTS = frozenset({CARRIER_EVENT_START, CARRIER_EVENT_STOP})


def _parse_json(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolDecodeError(f"Carrier frame is not UTF-8: {e}") from e
    try:
        message = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ProtocolDecodeError(f"Carrier frame is not valid JSON: {e}") from e
    if not isinstance(message, dict):
        raise ProtocolDecodeError("Carrier frame is not a JSON object")
    return message


def _decode_connected(message: Dict[str, Any], received_at: float) -> CarrierEvent:
    connected = ConnectedMessage(**message)
    return CarrierConnected(protocol=connected.protocol, version=connected.version)


def _decode_start(message: Dict[str, Any], received_at: float) -> CarrierEvent:
    start = StartMessage(**message).start
    return CarrierStarted(
        stream_id=start.streamSid,
        call_id=start.callSid,
        encoding=start.mediaFormat.encoding,
        sample_rate=start.mediaFormat.sampleRate,
        channels=start.mediaFormat.channels,
        custom_parameters=start.customParameters,
    )


def _decode_media(message: Dict[str, Any], received_at: float) -> CarrierEvent:
    media = MediaMessage(**message).media
    frame = AudioFrame(
        payload=base64.b64decode(media.payload),
        received_at=received_at,
        direction=AudioDirection.INBOUND,
    )
    return CarrierMedia(frame=frame, track=media.track, chunk=media.chunk)


def _decode_stop(message: Dict[str, Any], received_at: float) -> CarrierEvent:
    stop = StopMessage(**message).stop
    return CarrierStop(call_id=stop.callSid if stop else None)


def _decode_mark(message: Dict[str, Any], received_at: float) -> CarrierEvent:
    return CarrierMark(name=MarkMessage(**message).mark.name)


DECODERS = {
    CARRIER_EVENT_CONNECTED: _decode_connected,
    CARRIER_EVENT_START: _decode_start,
    CARRIER_EVENT_MEDIA: _decode_media,
    CARRIER_EVENT_STOP: _decode_stop,
    CARRIER_EVENT_MARK: _decode_mark,
}


def decode_carrier_message(raw: Any, received_at: Optional[float] = None) -> CarrierEvent:
    """
    Decode one carrier frame into an internal event.

    Args:
        raw: JSON text (or UTF-8 bytes) received from the carrier socket
        received_at: Monotonic arrival time; defaults to now

    Returns:
        The decoded carrier event

    Raises:
        ProtocolDecodeError: if the frame cannot be decoded. The error is fatal
            for start/stop frames and non-fatal for everything else.
    """
    if received_at is None:
        received_at = time.monotonic()

    message = _parse_json(raw)
    event_type = message.get("event")
    decoder = DECODERS.get(event_type)
    if decoder is None:
        raise ProtocolDecodeError(f"Unknown carrier event: {event_type}", event_type=event_type)

    try:
        return decoder(message, received_at)
    except ValidationError as e:
        raise ProtocolDecodeError(
            f"Invalid carrier {event_type} event: {e.error_count()} validation error(s)",
            event_type=event_type,
            fatal=event_type in FATAL_EVENTS,
        ) from e


def encode_carrier_media(payload: bytes, stream_id: str) -> str:
    """Build an outbound media frame carrying ``payload`` for ``stream_id``."""
    message = OutboundMediaMessage(
        streamSid=stream_id,
        media=OutboundMediaDetails(payload=base64.b64encode(payload).decode("utf-8")),
    )
    return message.model_dump_json()


def encode_carrier_mark(name: str, stream_id: str) -> str:
    return OutboundMarkMessage(streamSid=stream_id, mark=MarkDetails(name=name)).model_dump_json()


def encode_carrier_clear(stream_id: str) -> str:
    return OutboundClearMessage(streamSid=stream_id).model_dump_json()
