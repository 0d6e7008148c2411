"""Data models for failover runs.

- Literal enums so a type checker catches typos in sources, statuses and kinds.
- Frozen dataclasses: an Attempt is replaced, never edited in place.
- Canonical field ordering via to_dict(): the outcome crosses into a JSON
  report, so key names and enum spellings are a contract.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

CredentialSource = Literal["predefined", "user", "environment"]

ErrorKind = Literal["quota_exceeded", "invalid_credential", "network_error", "unknown"]

AttemptStatus = Literal["pending", "succeeded", "failed"]

# Precedence order, shared by the classifier and the aggregator
ERROR_KINDS: tuple[str, ...] = ErrorKind.__args__  # type: ignore[attr-defined]

VALID_SOURCES: frozenset[str] = frozenset(CredentialSource.__args__)  # type: ignore[attr-defined]

# Wire spellings of statuses and kinds in serialized attempts
_WIRE_STATUS = {"pending": "trying", "succeeded": "success", "failed": "failed"}
_WIRE_ERROR_TYPE = {
    "quota_exceeded": "quota_exceeded",
    "invalid_credential": "invalid_key",
    "network_error": "network_error",
    "unknown": "unknown_error",
}

MAX_ERROR_DISPLAY = 200

# Characters kept at each end of a partially redacted key
_VISIBLE_CHARS = 4


class RedactionLevel(Enum):
    """How much of a key may appear in tables, reports and the audit log."""
    PARTIAL = "partial"
    FULL = "full"
    HASH = "hash"


def redact(value: str, level: RedactionLevel | str = RedactionLevel.PARTIAL) -> str:
    """Printable stand-in for a key value. Keys too short to abbreviate are hidden."""
    level = RedactionLevel(level)
    if level is RedactionLevel.HASH:
        return "sha256:" + hashlib.sha256(value.encode()).hexdigest()[:12]
    if level is RedactionLevel.PARTIAL and len(value) > 3 * _VISIBLE_CHARS:
        return f"{value[:_VISIBLE_CHARS]}...{value[-_VISIBLE_CHARS:]}"
    return "[REDACTED]"


class RunState(Enum):
    """Orchestrator states. SUCCEEDED, EXHAUSTED and CANCELLED are terminal."""
    SELECTING = "selecting"
    INVOKING = "invoking"
    RETRY = "retry"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


def _plain(value: Any) -> Any:
    """Opaque callback payloads: use their to_dict() when they have one."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class Credential:
    """A secret value tagged with its provenance."""

    value: str = field(repr=False)
    source: CredentialSource
    ordinal: Optional[int] = None

    def __post_init__(self) -> None:
        if self.source not in VALID_SOURCES:
            raise ValueError(f"Unknown credential source: {self.source!r}")

    def display(self, level: RedactionLevel | str = RedactionLevel.PARTIAL) -> str:
        return redact(self.value, level)

    def label(self) -> str:
        """Human name used in logs and tables, e.g. 'API key #2'."""
        if self.source == "environment":
            return "environment key"
        if self.source == "user":
            return "user key"
        if self.ordinal is not None:
            return f"API key #{self.ordinal + 1}"
        return "API key"


@dataclass(frozen=True)
class Attempt:
    """One recorded try of a single credential."""

    credential: Credential
    status: AttemptStatus = "pending"
    error_kind: Optional[ErrorKind] = None
    error_text: Optional[str] = None
    # Cut short by the run's cancel token, not failed by the service
    aborted: bool = False

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    def to_dict(self, redaction_level: RedactionLevel | str = RedactionLevel.PARTIAL) -> dict:
        d: dict[str, Any] = {
            "key": self.credential.display(redaction_level),
            "source": self.credential.source,
        }
        if self.credential.ordinal is not None:
            d["index"] = self.credential.ordinal
        d["status"] = _WIRE_STATUS[self.status]
        if self.error_text is not None:
            d["error"] = self.error_text[:MAX_ERROR_DISPLAY]
        if self.error_kind is not None:
            d["errorType"] = _WIRE_ERROR_TYPE[self.error_kind]
        if self.aborted:
            d["aborted"] = True
        return d


@dataclass(frozen=True)
class FailureSummary:
    """Counts of failed attempts by kind. Derived, never stored on the run.

    Aborted attempts are left out: a cancelled call says nothing about the key.
    """

    total_attempts: int
    quota_exceeded: int
    invalid_keys: int
    network_errors: int
    unknown_errors: int

    @classmethod
    def from_attempts(cls, attempts: list[Attempt] | tuple[Attempt, ...]) -> "FailureSummary":
        kinds = [a.error_kind for a in attempts if a.status == "failed" and not a.aborted]
        return cls(
            total_attempts=len(kinds),
            quota_exceeded=kinds.count("quota_exceeded"),
            invalid_keys=kinds.count("invalid_credential"),
            network_errors=kinds.count("network_error"),
            unknown_errors=kinds.count("unknown"),
        )

    def count(self, kind: ErrorKind) -> int:
        return {
            "quota_exceeded": self.quota_exceeded,
            "invalid_credential": self.invalid_keys,
            "network_error": self.network_errors,
            "unknown": self.unknown_errors,
        }[kind]

    def to_dict(self) -> dict:
        return {
            "totalAttempts": self.total_attempts,
            "quotaExceeded": self.quota_exceeded,
            "invalidKeys": self.invalid_keys,
            "networkErrors": self.network_errors,
            "unknownErrors": self.unknown_errors,
        }


@dataclass(frozen=True)
class GenerationOutcome:
    """Terminal result of one failover run, returned to the caller."""

    success: bool
    attempts: tuple[Attempt, ...]
    all_keys_exhausted: bool = False
    result: Any = field(default=None, repr=False)
    failure_summary: Optional[FailureSummary] = None
    user_message: Optional[str] = None
    cancelled: bool = False

    @property
    def succeeded_with(self) -> Optional[Credential]:
        for a in reversed(self.attempts):
            if a.status == "succeeded":
                return a.credential
        return None

    def to_dict(self, redaction_level: RedactionLevel | str = RedactionLevel.PARTIAL) -> dict:
        """Canonical field ordering for the JSON report."""
        d: dict[str, Any] = {"success": self.success}
        if self.success and self.result is not None:
            d["result"] = _plain(self.result)
        d["allKeysExhausted"] = self.all_keys_exhausted
        d["attempts"] = [a.to_dict(redaction_level) for a in self.attempts]
        if self.failure_summary is not None:
            d["failureSummary"] = self.failure_summary.to_dict()
        if self.user_message is not None:
            d["error"] = self.user_message
        if self.cancelled:
            d["cancelled"] = True
        return d
