"""Turns an attempt history into the outcome returned to the caller."""

from __future__ import annotations

from typing import Any, Optional

from credential_failover.models import (
    ERROR_KINDS,
    Attempt,
    FailureSummary,
    GenerationOutcome,
    RunState,
)

_MESSAGES: dict[str, str] = {
    "quota_exceeded": (
        "All available API keys have exceeded their quota limits. "
        "Please try again later or provide an API key with remaining quota."
    ),
    "invalid_credential": (
        "All provided API keys are invalid. "
        "Please check your API keys and ensure they are valid Google Gemini API keys."
    ),
    "network_error": (
        "Network connectivity issues detected. "
        "Please check your internet connection and try again."
    ),
    "unknown": (
        "All available API keys have failed. "
        "Please provide a valid Google Gemini API key with available quota."
    ),
}

NO_CREDENTIALS_MESSAGE = "No API keys available. Please provide a valid Google Gemini API key."
CANCELLED_MESSAGE = "Generation was cancelled before an API key succeeded."


def user_message(summary: Optional[FailureSummary]) -> str:
    """Pick the dominant failure kind (quota > invalid > network > unknown) and template it."""
    if summary is None or summary.total_attempts == 0:
        return NO_CREDENTIALS_MESSAGE
    for kind in ERROR_KINDS:
        if summary.count(kind):  # type: ignore[arg-type]
            return _MESSAGES[kind]
    return _MESSAGES["unknown"]


def finalize(
    attempts: tuple[Attempt, ...],
    terminal_state: RunState,
    result: Any = None,
) -> GenerationOutcome:
    summary = FailureSummary.from_attempts(attempts)
    failure_summary = summary if summary.total_attempts else None

    if terminal_state == RunState.SUCCEEDED:
        return GenerationOutcome(
            success=True,
            attempts=attempts,
            result=result,
            failure_summary=failure_summary,
        )
    if terminal_state == RunState.EXHAUSTED:
        return GenerationOutcome(
            success=False,
            attempts=attempts,
            all_keys_exhausted=True,
            failure_summary=failure_summary,
            user_message=user_message(failure_summary),
        )
    if terminal_state == RunState.CANCELLED:
        return GenerationOutcome(
            success=False,
            attempts=attempts,
            failure_summary=failure_summary,
            user_message=CANCELLED_MESSAGE,
            cancelled=True,
        )
    raise ValueError(f"Not a terminal state: {terminal_state}")
