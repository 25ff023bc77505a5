"""
Internal event types produced by the codecs and consumed by the call session.

Each socket frame is decoded into exactly one of these immutable events; the
call session routes them through its handler tables by event class.
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from voice_gateway.models.session import AudioFrame, TranscriptRole


class GatewayEvent(BaseModel):
    model_config = ConfigDict(frozen=True)


# Carrier side
class CarrierConnected(GatewayEvent):
    protocol: Optional[str] = None
    version: Optional[str] = None


class CarrierStarted(GatewayEvent):
    stream_id: str
    call_id: str
    encoding: str
    sample_rate: int
    channels: int = 1
    custom_parameters: Dict[str, str] = Field(default_factory=dict)


class CarrierMedia(GatewayEvent):
    frame: AudioFrame
    track: Optional[str] = None
    chunk: Optional[str] = None


class CarrierStop(GatewayEvent):
    call_id: Optional[str] = None


class CarrierMark(GatewayEvent):
    name: str


CarrierEvent = Union[CarrierConnected, CarrierStarted, CarrierMedia, CarrierStop, CarrierMark]


# AI side
class RealtimeSessionReady(GatewayEvent):
    session_id: Optional[str] = None


class RealtimeAudioDelta(GatewayEvent):
    payload: bytes


class RealtimeResponseCompleted(GatewayEvent):
    response_id: Optional[str] = None


class RealtimeToolCall(GatewayEvent):
    call_id: str
    name: str
    arguments: Any = None


class RealtimeTranscript(GatewayEvent):
    role: TranscriptRole
    text: str


class RealtimeError(GatewayEvent):
    code: Optional[str] = None
    message: str = ""


class RealtimeUnhandled(GatewayEvent):
    type: str


RealtimeEvent = Union[
    RealtimeSessionReady,
    RealtimeAudioDelta,
    RealtimeResponseCompleted,
    RealtimeToolCall,
    RealtimeTranscript,
    RealtimeError,
    RealtimeUnhandled,
]


class CommitAndRespond(GatewayEvent):
    """Signal that the buffered user audio is a complete utterance."""
    gap_seconds: Optional[float] = None
