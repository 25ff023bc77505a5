"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for protocol names, defaults and tuning values so
the carrier codec, the realtime codec and the call session agree on them.
"""

# Logger name used throughout the application
LOGGER_NAME = "voice_gateway"

SERVICE_NAME = "voice-gateway"
SERVICE_VERSION = "1.0.0"

# Default OpenAI model and endpoint for the Realtime API
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview"
DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_VOICE = "verse"

# Audio format constants
AUDIO_FORMAT_G711_ULAW = "g711_ulaw"
AUDIO_FORMAT_G711_ALAW = "g711_alaw"
AUDIO_FORMAT_PCM16 = "pcm16"
SUPPORTED_AUDIO_FORMATS = [AUDIO_FORMAT_G711_ULAW, AUDIO_FORMAT_G711_ALAW, AUDIO_FORMAT_PCM16]

# Carrier (Twilio Media Streams) event names
CARRIER_EVENT_CONNECTED = "connected"
CARRIER_EVENT_START = "start"
CARRIER_EVENT_MEDIA = "media"
CARRIER_EVENT_STOP = "stop"
CARRIER_EVENT_MARK = "mark"

# Realtime API message types, inbound
MESSAGE_TYPE_SESSION_CREATED = "session.created"
MESSAGE_TYPE_SESSION_UPDATED = "session.updated"
MESSAGE_TYPE_OUTPUT_AUDIO_DELTA = "response.output_audio.delta"
MESSAGE_TYPE_AUDIO_DELTA = "response.audio.delta"
MESSAGE_TYPE_RESPONSE_COMPLETED = "response.completed"
MESSAGE_TYPE_RESPONSE_DONE = "response.done"
MESSAGE_TYPE_FUNCTION_CALL = "response.function_call"
MESSAGE_TYPE_FUNCTION_CALL_ARGUMENTS_DONE = "response.function_call_arguments.done"
MESSAGE_TYPE_INPUT_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
MESSAGE_TYPE_OUTPUT_AUDIO_TRANSCRIPT_DONE = "response.output_audio_transcript.done"
MESSAGE_TYPE_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
MESSAGE_TYPE_ERROR = "error"

# Session timing defaults
DEFAULT_QUIET_THRESHOLD_MS = 900
DEFAULT_IDLE_TIMEOUT_SECONDS = 30.0
DEFAULT_KEEPALIVE_INTERVAL_SECONDS = 10.0
DEFAULT_CLOSE_GRACE_SECONDS = 3.0
DEFAULT_TOOL_TIMEOUT_SECONDS = 15.0

DEFAULT_INSTRUCTIONS = (
    "You are FortuneOne AI Receptionist (EN/TH) for a massage & waxing spa in NYC. "
    "Speak shortly, one question at a time. Verify service/date/time/name/phone. "
    "Offer nearest available slots. Policies: close 22:00, last booking 21:00, cancel >=3h."
)
