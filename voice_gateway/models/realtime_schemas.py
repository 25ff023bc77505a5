"""
Pydantic models for OpenAI Realtime API message structures.

This module provides type-safe models for the messages exchanged with the OpenAI Realtime API,
including both incoming and outgoing message formats.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RealtimeBaseMessage(BaseModel):
    """Base model for Realtime API messages."""

    model_config = ConfigDict(extra="allow")

    type: str


# Outgoing messages
class SessionConfig(BaseModel):
    """Session parameters sent in the session.update handshake."""
    instructions: str
    modalities: List[str] = Field(default_factory=lambda: ["audio", "text"])
    input_audio_format: str
    output_audio_format: str
    voice: Optional[str] = None
    tool_choice: str = "auto"
    tools: List[Dict[str, Any]] = Field(default_factory=list)


class SessionUpdateMessage(BaseModel):
    type: Literal["session.update"] = "session.update"
    session: SessionConfig


class InputAudioBufferAppendMessage(BaseModel):
    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str = Field(..., description="Base64-encoded audio data")
    audio_format: Optional[str] = None


class InputAudioBufferCommitMessage(BaseModel):
    type: Literal["input_audio_buffer.commit"] = "input_audio_buffer.commit"


class ResponseOptions(BaseModel):
    modalities: List[str] = Field(default_factory=lambda: ["audio"])


class ResponseCreateMessage(BaseModel):
    type: Literal["response.create"] = "response.create"
    response: ResponseOptions = Field(default_factory=ResponseOptions)


class FunctionCallResultMessage(BaseModel):
    type: Literal["response.function_call_result"] = "response.function_call_result"
    call_id: str
    result: Dict[str, Any]


# Incoming messages
class RealtimeAudioDeltaMessage(RealtimeBaseMessage):
    """Output audio chunk. Preview events use ``audio``, GA events use ``delta``."""
    audio: Optional[str] = None
    delta: Optional[str] = None


class RealtimeFunctionCallMessage(RealtimeBaseMessage):
    """Function call requested by the model."""
    call_id: str
    name: str
    arguments: Union[str, Dict[str, Any], None] = None


class RealtimeTranscriptMessage(RealtimeBaseMessage):
    """Finished transcription of user or assistant speech."""
    transcript: str


class RealtimeErrorMessage(RealtimeBaseMessage):
    """Error message from OpenAI Realtime API."""
    error: Dict[str, Any] = Field(default_factory=dict)


OutgoingRealtimeMessage = Union[
    SessionUpdateMessage,
    InputAudioBufferAppendMessage,
    InputAudioBufferCommitMessage,
    ResponseCreateMessage,
    FunctionCallResultMessage,
]
