"""
PII redaction helpers.

Everything the gateway logs passes through these functions, so phone numbers,
email addresses, card numbers, SSNs and credentials never reach the log sink.
Twilio SIDs are shortened rather than removed to keep them useful for debugging.
"""

import re
from typing import Any, Pattern

REDACTED = "[REDACTED]"

PII_PATTERNS = {
    "phone": (
        re.compile(r"(?<!\w)(\+?1?[\s.-]?)?\(?[2-9]\d{2}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)"),
        "[PHONE_REDACTED]",
    ),
    "email": (
        re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
        "[EMAIL_REDACTED]",
    ),
    "credit_card": (
        re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
        "[CC_REDACTED]",
    ),
    "ssn": (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN_REDACTED]"),
}

TWILIO_SID_PATTERN: Pattern = re.compile(r"\b(AC|CA|SM|PN|RE|MG|MZ)[a-f0-9]{32}\b", re.IGNORECASE)

SENSITIVE_KEYS = [
    "password",
    "apikey",
    "api_key",
    "token",
    "secret",
    "authorization",
    "phone",
    "from",
    "caller",
]


def redact_string(value: str) -> str:
    """Replace PII found in a string."""
    if not value or not isinstance(value, str):
        return value

    redacted = value
    # Card numbers first so the phone pattern does not eat part of them
    for name in ("credit_card", "ssn", "email", "phone"):
        pattern, replacement = PII_PATTERNS[name]
        redacted = pattern.sub(replacement, redacted)

    return TWILIO_SID_PATTERN.sub(lambda m: f"{m.group(0)[:4]}...{m.group(0)[-4:]}", redacted)


def _is_sensitive_key(key: str) -> bool:
    lowered = str(key).lower()
    return any(sensitive in lowered for sensitive in SENSITIVE_KEYS)


def redact_pii(data: Any) -> Any:
    """
    Recursively redact PII from strings, mappings and sequences.

    Values stored under sensitive keys (credentials, phone fields) are replaced
    entirely; other strings are scrubbed pattern by pattern.
    """
    if isinstance(data, str):
        return redact_string(data)
    if isinstance(data, dict):
        return {
            key: REDACTED if _is_sensitive_key(key) else redact_pii(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(redact_pii(item) for item in data)
    return data


def partial_redact(value: str, show_chars: int = 4) -> str:
    """Keep the first and last ``show_chars`` characters of a value."""
    if not value or not isinstance(value, str):
        return value
    if len(value) <= show_chars * 2:
        return REDACTED
    hidden = len(value) - show_chars * 2
    return f"{value[:show_chars]}{'*' * hidden}{value[-show_chars:]}"
