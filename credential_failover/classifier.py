"""Failure classifier: raw error text -> ErrorKind.

Rules are evaluated in priority order and the first match wins, regardless of
where in the message a phrase appears. All matching is case-insensitive
substring matching.
"""

from __future__ import annotations

from credential_failover.models import ErrorKind

_RULES: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    ("quota_exceeded", ("quota", "429", "too many requests")),
    ("invalid_credential", ("invalid", "unauthorized", "403", "401")),
    ("network_error", ("network", "fetch", "connection", "timeout")),
)

_DESCRIPTIONS: dict[str, str] = {
    "quota_exceeded": "Quota limit exceeded",
    "invalid_credential": "Invalid API key",
    "network_error": "Network connection error",
    "unknown": "Unknown error",
}


def classify(raw_error_text: str) -> ErrorKind:
    """Classify a raw failure message.

    >>> classify("429 Too Many Requests")
    'quota_exceeded'
    >>> classify("weird server glitch")
    'unknown'
    """
    text = (raw_error_text or "").lower()
    for kind, phrases in _RULES:
        if any(p in text for p in phrases):
            return kind
    return "unknown"


def describe(kind: ErrorKind) -> str:
    """Short per-attempt label for status displays."""
    return _DESCRIPTIONS[kind]
