"""
Codec for the OpenAI Realtime API event vocabulary.

Inbound JSON events are mapped onto the gateway's internal realtime events;
outbound helpers build the JSON text for the handful of client events the call
session sends. Both the preview and GA names of the audio, completion and
function-call events are accepted.
"""

import base64
import binascii
import json
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from voice_gateway.config.constants import (
    MESSAGE_TYPE_AUDIO_DELTA,
    MESSAGE_TYPE_AUDIO_TRANSCRIPT_DONE,
    MESSAGE_TYPE_ERROR,
    MESSAGE_TYPE_FUNCTION_CALL,
    MESSAGE_TYPE_FUNCTION_CALL_ARGUMENTS_DONE,
    MESSAGE_TYPE_INPUT_TRANSCRIPTION_COMPLETED,
    MESSAGE_TYPE_OUTPUT_AUDIO_DELTA,
    MESSAGE_TYPE_OUTPUT_AUDIO_TRANSCRIPT_DONE,
    MESSAGE_TYPE_RESPONSE_COMPLETED,
    MESSAGE_TYPE_RESPONSE_DONE,
    MESSAGE_TYPE_SESSION_CREATED,
    MESSAGE_TYPE_SESSION_UPDATED,
)
from voice_gateway.exceptions import ProtocolDecodeError
from voice_gateway.models.events import (
    RealtimeAudioDelta,
    RealtimeError,
    RealtimeEvent,
    RealtimeResponseCompleted,
    RealtimeSessionReady,
    RealtimeToolCall,
    RealtimeTranscript,
    RealtimeUnhandled,
)
from voice_gateway.models.realtime_schemas import (
    FunctionCallResultMessage,
    InputAudioBufferAppendMessage,
    InputAudioBufferCommitMessage,
    RealtimeAudioDeltaMessage,
    RealtimeErrorMessage,
    RealtimeFunctionCallMessage,
    RealtimeTranscriptMessage,
    ResponseCreateMessage,
    SessionConfig,
    SessionUpdateMessage,
)
from voice_gateway.models.session import TranscriptRole


def _decode_session_ready(message: Dict[str, Any]) -> RealtimeEvent:
    session = message.get("session") or {}
    return RealtimeSessionReady(session_id=session.get("id") if isinstance(session, dict) else None)


def _decode_audio_delta(message: Dict[str, Any]) -> RealtimeEvent:
    delta = RealtimeAudioDeltaMessage(**message)
    encoded = delta.audio if delta.audio is not None else delta.delta
    if not encoded:
        raise ProtocolDecodeError("Audio delta without audio", event_type=delta.type)
    try:
        payload = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolDecodeError(f"Audio delta is not valid base64: {e}", event_type=delta.type) from e
    return RealtimeAudioDelta(payload=payload)


def _decode_response_completed(message: Dict[str, Any]) -> RealtimeEvent:
    response = message.get("response") or {}
    return RealtimeResponseCompleted(response_id=response.get("id") if isinstance(response, dict) else None)


def _decode_function_call(message: Dict[str, Any]) -> RealtimeEvent:
    call = RealtimeFunctionCallMessage(**message)
    return RealtimeToolCall(call_id=call.call_id, name=call.name, arguments=call.arguments)


def _transcript_decoder(role: TranscriptRole) -> Callable[[Dict[str, Any]], RealtimeEvent]:
    def decode(message: Dict[str, Any]) -> RealtimeEvent:
        return RealtimeTranscript(role=role, text=RealtimeTranscriptMessage(**message).transcript)
    return decode


def _decode_error(message: Dict[str, Any]) -> RealtimeEvent:
    error = RealtimeErrorMessage(**message).error
    return RealtimeError(code=error.get("code"), message=str(error.get("message", "")))


DECODERS: Dict[str, Callable[[Dict[str, Any]], RealtimeEvent]] = {
    MESSAGE_TYPE_SESSION_CREATED: _decode_session_ready,
    MESSAGE_TYPE_SESSION_UPDATED: _decode_session_ready,
    MESSAGE_TYPE_OUTPUT_AUDIO_DELTA: _decode_audio_delta,
    MESSAGE_TYPE_AUDIO_DELTA: _decode_audio_delta,
    MESSAGE_TYPE_RESPONSE_COMPLETED: _decode_response_completed,
    MESSAGE_TYPE_RESPONSE_DONE: _decode_response_completed,
    MESSAGE_TYPE_FUNCTION_CALL: _decode_function_call,
    MESSAGE_TYPE_FUNCTION_CALL_ARGUMENTS_DONE: _decode_function_call,
    MESSAGE_TYPE_INPUT_TRANSCRIPTION_COMPLETED: _transcript_decoder(TranscriptRole.USER),
    MESSAGE_TYPE_OUTPUT_AUDIO_TRANSCRIPT_DONE: _transcript_decoder(TranscriptRole.ASSISTANT),
    MESSAGE_TYPE_AUDIO_TRANSCRIPT_DONE: _transcript_decoder(TranscriptRole.ASSISTANT),
    MESSAGE_TYPE_ERROR: _decode_error,
}


def decode_realtime_message(raw: Any) -> RealtimeEvent:
    """
    Decode one Realtime API frame into an internal event.

    Unknown event types decode to RealtimeUnhandled rather than failing.

    Raises:
        ProtocolDecodeError: if the frame is not JSON or a known event is
            missing required fields. Realtime decode errors are never fatal.
    """
    if isinstance(raw, (bytes, bytearray)):
        raise ProtocolDecodeError("Unexpected binary frame from realtime API")
    try:
        message = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ProtocolDecodeError(f"Realtime frame is not valid JSON: {e}") from e
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise ProtocolDecodeError("Realtime frame has no type")

    event_type = message["type"]
    decoder = DECODERS.get(event_type)
    if decoder is None:
        return RealtimeUnhandled(type=event_type)
    try:
        return decoder(message)
    except ValidationError as e:
        raise ProtocolDecodeError(
            f"Invalid realtime {event_type} event: {e.error_count()} validation error(s)",
            event_type=event_type,
        ) from e


def encode_session_update(
    instructions: str,
    audio_format: str,
    tools: List[Dict[str, Any]],
    voice: Optional[str] = None,
) -> str:
    """Build the session.update handshake sent right after connecting."""
    message = SessionUpdateMessage(
        session=SessionConfig(
            instructions=instructions,
            input_audio_format=audio_format,
            output_audio_format=audio_format,
            voice=voice,
            tools=tools,
        )
    )
    return message.model_dump_json(exclude_none=True)


def encode_audio_append(payload: bytes, audio_format: Optional[str] = None) -> str:
    message = InputAudioBufferAppendMessage(
        audio=base64.b64encode(payload).decode("utf-8"),
        audio_format=audio_format,
    )
    return message.model_dump_json(exclude_none=True)


def encode_audio_commit() -> str:
    return InputAudioBufferCommitMessage().model_dump_json()


def encode_response_create() -> str:
    return ResponseCreateMessage().model_dump_json()


def encode_function_call_result(call_id: str, result: Dict[str, Any]) -> str:
    return FunctionCallResultMessage(call_id=call_id, result=result).model_dump_json()
