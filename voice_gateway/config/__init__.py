"""
Configuration module for the voice gateway.

Key components:
- constants: Application-wide constants, including carrier event names,
  realtime message types, audio formats and timing defaults.
- settings: Pydantic settings model built from environment variables.
- logging_config: Console and rotating-file logging with PII redaction.

Usage examples:
```python
from voice_gateway.config.settings import Settings
from voice_gateway.config.logging_config import configure_logging

settings = Settings.from_env()
logger = configure_logging(settings.log_level)
```
"""

# Config module initialization
