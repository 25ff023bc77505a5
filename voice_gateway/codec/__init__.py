"""
Protocol codecs for the two sockets a call is bridged between.

- carrier: Twilio Media Streams frames ↔ internal carrier events
- realtime: OpenAI Realtime API events ↔ internal realtime events

Both modules are stateless; decoding errors are reported as
ProtocolDecodeError with a ``fatal`` flag that the call session acts on.
"""

from voice_gateway.codec.carrier import (
    decode_carrier_message,
    encode_carrier_clear,
    encode_carrier_mark,
    encode_carrier_media,
)
from voice_gateway.codec.realtime import (
    decode_realtime_message,
    encode_audio_append,
    encode_audio_commit,
    encode_function_call_result,
    encode_response_create,
    encode_session_update,
)

__all__ = [
    "decode_carrier_message",
    "encode_carrier_clear",
    "encode_carrier_mark",
    "encode_carrier_media",
    "decode_realtime_message",
    "encode_audio_append",
    "encode_audio_commit",
    "encode_function_call_result",
    "encode_response_create",
    "encode_session_update",
]
