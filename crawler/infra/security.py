"""
Scrub credentials out of strings before they reach logs or crawl diagnostics.
"""
from __future__ import annotations

import re

_QUERY_SECRET = re.compile(r"(?i)\b(api[_-]?key|key|token|secret|password)=([^&\s]+)")
_BEARER = re.compile(r"(?i)Bearer\s+[A-Za-z0-9._\-]+")
_GOOGLE_KEY = re.compile(r"AIza[0-9A-Za-z_\-]{20,}")
_DSN_PASSWORD = re.compile(r"(?i)(\w+(?:\+\w+)?://[^:/\s@]+:)([^@\s]+)(@)")

PLACEHOLDER_MARKERS = ("YOUR_", "your_", "changeme")


def redact_secrets(text: str) -> str:
    """Redact API keys, bearer tokens and DSN passwords from ``text``."""
    if not isinstance(text, str):
        return text

    redacted = _QUERY_SECRET.sub(r"\1=***REDACTED***", text)
    redacted = _BEARER.sub("Bearer ***REDACTED***", redacted)
    redacted = _GOOGLE_KEY.sub("***REDACTED***", redacted)
    redacted = _DSN_PASSWORD.sub(r"\1***REDACTED***\3", redacted)
    return redacted


def is_configured_key(value: str | None) -> bool:
    """Return True if a credential is set and is not a template placeholder."""
    if not value or not value.strip():
        return False
    return not any(marker in value for marker in PLACEHOLDER_MARKERS)
