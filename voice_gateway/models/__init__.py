"""
Models module for data structures and state management in the voice gateway.

Key components:
- twilio_schemas: Pydantic models for the Twilio Media Streams messages.
- realtime_schemas: Pydantic models for the OpenAI Realtime API messages.
- events: Internal events produced by the codecs.
- session: Call states, audio frames, transcript entries, tool invocations.
- registry: Process-wide table of active call sessions.
"""

from voice_gateway.models.registry import SessionRegistry
from voice_gateway.models.session import (
    AudioFrame,
    CallState,
    ToolInvocation,
    ToolStatus,
    TranscriptEntry,
    TranscriptRole,
)
