"""
Pydantic models for Twilio Media Streams message schemas.

This module defines structured data models for the incoming and outgoing messages
of the carrier's media-stream WebSocket protocol, providing type validation and
documentation. Field names follow the wire format (camelCase).
"""

import base64
import binascii
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


def _validate_base64(v: str) -> str:
    if not v:
        raise ValueError("Audio payload cannot be empty")
    try:
        base64.b64decode(v, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Invalid base64 encoded audio data")
    return v


# Base Models
class CarrierBaseMessage(BaseModel):
    """Base model for all carrier messages."""

    event: str = Field(..., description="Event type identifier")
    sequenceNumber: Optional[str] = Field(None, description="Carrier sequence number")
    streamSid: Optional[str] = Field(None, description="Media stream identifier")


class ConnectedMessage(CarrierBaseMessage):
    """Model for the connected event, sent once the socket is open."""

    event: Literal["connected"]
    protocol: Optional[str] = None
    version: Optional[str] = None


class MediaFormat(BaseModel):
    """Audio encoding negotiated for the stream."""

    encoding: str = Field(..., description="e.g. audio/x-mulaw")
    sampleRate: int = Field(..., gt=0)
    channels: int = Field(1, gt=0)


class StartDetails(BaseModel):
    streamSid: str = Field(..., description="Media stream identifier")
    accountSid: Optional[str] = None
    callSid: str = Field(..., description="Carrier call identifier")
    tracks: List[str] = Field(default_factory=list)
    mediaFormat: MediaFormat
    customParameters: Dict[str, str] = Field(default_factory=dict)

    @field_validator("streamSid", "callSid")
    def validate_identifier(cls, v):
        """Validate that identifiers are not blank."""
        if not v.strip():
            raise ValueError("Identifier cannot be empty")
        return v


class StartMessage(CarrierBaseMessage):
    """Model for the start event, sent when the call's media begins."""

    event: Literal["start"]
    start: StartDetails


class MediaDetails(BaseModel):
    track: Optional[str] = None
    chunk: Optional[str] = None
    timestamp: Optional[str] = None
    payload: str = Field(..., description="Base64-encoded audio data")

    @field_validator("payload")
    def validate_payload(cls, v):
        """Validate that the payload is valid base64."""
        return _validate_base64(v)


class MediaMessage(CarrierBaseMessage):
    """Model for a media event carrying one chunk of audio."""

    event: Literal["media"]
    media: MediaDetails


class StopDetails(BaseModel):
    accountSid: Optional[str] = None
    callSid: Optional[str] = None


class StopMessage(CarrierBaseMessage):
    """Model for the stop event, sent when the stream ends."""

    event: Literal["stop"]
    stop: Optional[StopDetails] = None


class MarkDetails(BaseModel):
    name: str = Field(..., description="Mark label")


class MarkMessage(CarrierBaseMessage):
    """Model for a mark event, echoed once playback reaches the mark."""

    event: Literal["mark"]
    mark: MarkDetails


# Outbound messages
class OutboundMediaDetails(BaseModel):
    payload: str = Field(..., description="Base64-encoded audio data")

    @field_validator("payload")
    def validate_payload(cls, v):
        """Validate that the payload is valid base64."""
        return _validate_base64(v)


class OutboundMediaMessage(BaseModel):
    """Model for a media frame sent to the carrier."""

    event: Literal["media"] = "media"
    streamSid: str
    media: OutboundMediaDetails


class OutboundMarkMessage(BaseModel):
    """Model for a mark sent to the carrier."""

    event: Literal["mark"] = "mark"
    streamSid: str
    mark: MarkDetails


class OutboundClearMessage(BaseModel):
    """Model for a clear message, which drops buffered playback."""

    event: Literal["clear"] = "clear"
    streamSid: str


# Union type for all possible incoming messages
IncomingCarrierMessage = Union[
    ConnectedMessage,
    StartMessage,
    MediaMessage,
    StopMessage,
    MarkMessage,
]

# Union type for all possible outgoing messages
OutgoingCarrierMessage = Union[
    OutboundMediaMessage,
    OutboundMarkMessage,
    OutboundClearMessage,
]
