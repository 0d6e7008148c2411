"""Credential failover engine for generative AI API calls."""

from credential_failover.models import (
    Attempt,
    Credential,
    FailureSummary,
    GenerationOutcome,
    RunState,
)
from credential_failover.orchestrator import FailoverOrchestrator

__version__ = "0.1.0"

__all__ = [
    "Attempt",
    "Credential",
    "FailoverOrchestrator",
    "FailureSummary",
    "GenerationOutcome",
    "RunState",
]
