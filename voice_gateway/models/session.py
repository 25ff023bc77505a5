"""
Per-call data structures: lifecycle states, audio frames, transcript entries
and tool invocations.
"""

import json
import time
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CallState(str, Enum):
    """Lifecycle state of a call session."""
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    DRAINING = "draining"
    CLOSED = "closed"


# Allowed forward transitions; anything else is rejected by the session
ALLOWED_TRANSITIONS = {
    CallState.IDLE: {CallState.NEGOTIATING, CallState.CLOSED},
    CallState.NEGOTIATING: {CallState.ACTIVE, CallState.DRAINING, CallState.CLOSED},
    CallState.ACTIVE: {CallState.DRAINING, CallState.CLOSED},
    CallState.DRAINING: {CallState.CLOSED},
    CallState.CLOSED: set(),
}

# States in which audio may flow in each direction
INBOUND_AUDIO_STATES = frozenset({CallState.NEGOTIATING, CallState.ACTIVE})
OUTBOUND_AUDIO_STATES = frozenset({CallState.ACTIVE, CallState.DRAINING})


class AudioDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class AudioFrame(BaseModel):
    """An opaque chunk of call audio. Never modified after construction."""

    model_config = ConfigDict(frozen=True)

    payload: bytes
    received_at: float = Field(default_factory=time.monotonic)
    direction: AudioDirection = AudioDirection.INBOUND


class TranscriptRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TranscriptEntry(BaseModel):
    """One utterance in the call transcript."""

    model_config = ConfigDict(frozen=True)

    role: TranscriptRole
    text: str
    timestamp: float = Field(default_factory=time.time)


class ToolStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class ToolInvocation(BaseModel):
    """
    A tool call requested by the AI model.

    The invocation starts Pending and is settled exactly once, either with
    ``resolve`` (the tool produced a result) or ``fail`` (the result is an
    error object). Both return the result that must be sent back to the model.
    """

    call_id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    argument_error: Optional[str] = None
    status: ToolStatus = ToolStatus.PENDING
    result: Optional[Dict[str, Any]] = None

    @classmethod
    def from_request(cls, call_id: str, name: str, arguments: Any) -> "ToolInvocation":
        """Create an invocation, parsing JSON-encoded arguments when needed."""
        if arguments is None or arguments == "":
            return cls(call_id=call_id, name=name)
        if isinstance(arguments, dict):
            return cls(call_id=call_id, name=name, arguments=arguments)
        if isinstance(arguments, str):
            try:
                parsed = json.loads(arguments)
            except json.JSONDecodeError as e:
                return cls(call_id=call_id, name=name, argument_error=f"arguments are not valid JSON: {e.msg}")
            if isinstance(parsed, dict):
                return cls(call_id=call_id, name=name, arguments=parsed)
        return cls(call_id=call_id, name=name, argument_error="arguments must be an object")

    @property
    def is_pending(self) -> bool:
        return self.status is ToolStatus.PENDING

    def _settle(self, status: ToolStatus, result: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_pending:
            raise RuntimeError(f"Tool invocation {self.call_id} already {self.status.value}")
        self.status = status
        self.result = result
        return result

    def resolve(self, result: Dict[str, Any]) -> Dict[str, Any]:
        return self._settle(ToolStatus.RESOLVED, result)

    def fail(self, result: Dict[str, Any]) -> Dict[str, Any]:
        return self._settle(ToolStatus.FAILED, result)
