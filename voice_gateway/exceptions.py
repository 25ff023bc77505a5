"""
Exception types raised inside the voice gateway.

Only ConfigurationError is allowed to stop a call before it starts; the others
are caught by the call session and turned into a log entry, a structured tool
result or a state transition.
"""

from typing import List, Optional


class GatewayError(Exception):
    """Base class for every error raised by the gateway."""


class ProtocolDecodeError(GatewayError):
    """A frame from one of the sockets could not be decoded.

    ``fatal`` is True when the frame was a control frame (carrier start/stop)
    whose loss breaks the call lifecycle.
    """

    def __init__(self, message: str, event_type: Optional[str] = None, fatal: bool = False):
        super().__init__(message)
        self.event_type = event_type
        self.fatal = fatal


class ChannelDisconnect(GatewayError):
    """One of the two sockets went away."""

    def __init__(self, channel: str, reason: str = ""):
        super().__init__(f"{channel} channel disconnected{': ' + reason if reason else ''}")
        self.channel = channel
        self.reason = reason


class UpstreamError(GatewayError):
    """The AI model or the booking collaborator reported a failure."""


class ConfigurationError(GatewayError):
    """Required settings are missing."""

    def __init__(self, missing: List[str]):
        super().__init__(f"Missing required configuration: {', '.join(missing)}")
        self.missing = list(missing)
