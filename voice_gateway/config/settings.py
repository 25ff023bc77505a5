"""
Environment-based settings for the voice gateway.

Values are read from the process environment (a ``.env`` file is loaded by
``voice_gateway.main`` before this runs) into a pydantic model so the rest of
the application receives typed, validated configuration.
"""

import os
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from voice_gateway.config.constants import (
    AUDIO_FORMAT_G711_ULAW,
    DEFAULT_CLOSE_GRACE_SECONDS,
    DEFAULT_IDLE_TIMEOUT_SECONDS,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_KEEPALIVE_INTERVAL_SECONDS,
    DEFAULT_QUIET_THRESHOLD_MS,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_REALTIME_URL,
    DEFAULT_TOOL_TIMEOUT_SECONDS,
    DEFAULT_VOICE,
    SUPPORTED_AUDIO_FORMATS,
)
from voice_gateway.exceptions import ConfigurationError


class Settings(BaseModel):
    """Typed view of the gateway configuration."""

    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    openai_realtime_model: str = DEFAULT_REALTIME_MODEL
    openai_realtime_url: str = DEFAULT_REALTIME_URL
    openai_voice: str = DEFAULT_VOICE
    audio_format: str = AUDIO_FORMAT_G711_ULAW
    instructions: str = DEFAULT_INSTRUCTIONS

    quiet_threshold_ms: int = Field(DEFAULT_QUIET_THRESHOLD_MS, gt=0)
    idle_timeout_seconds: float = Field(DEFAULT_IDLE_TIMEOUT_SECONDS, gt=0)
    keepalive_interval_seconds: float = Field(DEFAULT_KEEPALIVE_INTERVAL_SECONDS, gt=0)
    close_grace_seconds: float = Field(DEFAULT_CLOSE_GRACE_SECONDS, gt=0)
    tool_timeout_seconds: float = Field(DEFAULT_TOOL_TIMEOUT_SECONDS, gt=0)

    twilio_account_sid: Optional[str] = None

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @field_validator("audio_format")
    def validate_audio_format(cls, v):
        """Validate that the audio format is one the realtime API accepts."""
        if v not in SUPPORTED_AUDIO_FORMATS:
            raise ValueError(f"Unsupported audio format: {v}")
        return v

    @field_validator("log_level")
    def normalize_log_level(cls, v):
        return v.upper()

    @property
    def quiet_threshold_seconds(self) -> float:
        return self.quiet_threshold_ms / 1000.0

    @property
    def realtime_endpoint(self) -> str:
        return f"{self.openai_realtime_url}?model={self.openai_realtime_model}"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        values = {
            "openai_api_key": os.getenv("OPENAI_API_KEY") or None,
            "openai_realtime_model": os.getenv("OPENAI_REALTIME_MODEL"),
            "openai_realtime_url": os.getenv("OPENAI_REALTIME_URL"),
            "openai_voice": os.getenv("OPENAI_VOICE"),
            "audio_format": os.getenv("AUDIO_FORMAT"),
            "instructions": os.getenv("ASSISTANT_INSTRUCTIONS"),
            "quiet_threshold_ms": os.getenv("QUIET_THRESHOLD_MS"),
            "idle_timeout_seconds": os.getenv("IDLE_TIMEOUT_SECONDS"),
            "keepalive_interval_seconds": os.getenv("KEEPALIVE_INTERVAL_SECONDS"),
            "close_grace_seconds": os.getenv("CLOSE_GRACE_SECONDS"),
            "tool_timeout_seconds": os.getenv("TOOL_TIMEOUT_SECONDS"),
            "twilio_account_sid": os.getenv("TWILIO_ACCOUNT_SID") or None,
            "host": os.getenv("HOST"),
            "port": os.getenv("PORT"),
            "log_level": os.getenv("LOG_LEVEL"),
        }
        # Unset variables keep the model defaults
        return cls(**{key: value for key, value in values.items() if value is not None})

    def missing_required(self) -> List[str]:
        """Names of required environment variables that are not set."""
        missing = []
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.twilio_account_sid:
            missing.append("TWILIO_ACCOUNT_SID")
        return missing

    def require_realtime_credentials(self) -> str:
        """
        Return the OpenAI API key or raise if it is missing.

        Raises:
            ConfigurationError: if OPENAI_API_KEY is not configured
        """
        if not self.openai_api_key:
            raise ConfigurationError(["OPENAI_API_KEY"])
        return self.openai_api_key
