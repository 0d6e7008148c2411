"""Append-only attempt log for a single failover run."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal, Optional

from credential_failover.models import Attempt, Credential, ErrorKind


class AttemptStateError(RuntimeError):
    """Raised on an illegal attempt transition. Always a programming error."""


@dataclass(frozen=True)
class AttemptHandle:
    position: int


class AttemptTracker:
    """Chronological log of attempts. Entries are never removed or reordered.

    At most one attempt is pending at a time, and a pending attempt moves to
    ``succeeded`` or ``failed`` exactly once.
    """

    def __init__(self) -> None:
        self._attempts: list[Attempt] = []

    def begin(self, credential: Credential) -> AttemptHandle:
        if self.pending is not None:
            raise AttemptStateError("Another attempt is still pending")
        self._attempts.append(Attempt(credential=credential))
        return AttemptHandle(position=len(self._attempts) - 1)

    def complete(
        self,
        handle: AttemptHandle,
        outcome: Literal["succeeded", "failed"],
        error_kind: Optional[ErrorKind] = None,
        error_text: Optional[str] = None,
        aborted: bool = False,
    ) -> Attempt:
        if not 0 <= handle.position < len(self._attempts):
            raise AttemptStateError(f"Unknown attempt handle: {handle.position}")
        current = self._attempts[handle.position]
        if not current.is_pending:
            raise AttemptStateError(
                f"Attempt {handle.position} already completed as {current.status}"
            )
        if outcome == "failed":
            if error_kind is None:
                raise AttemptStateError("A failed attempt needs an error kind")
            updated = replace(current, status="failed", error_kind=error_kind,
                              error_text=error_text, aborted=aborted)
        elif outcome == "succeeded":
            updated = replace(current, status="succeeded")
        else:
            raise AttemptStateError(f"Unknown attempt outcome: {outcome!r}")
        self._attempts[handle.position] = updated
        return updated

    @property
    def pending(self) -> Optional[Attempt]:
        if self._attempts and self._attempts[-1].is_pending:
            return self._attempts[-1]
        return None

    def history(self) -> tuple[Attempt, ...]:
        return tuple(self._attempts)

    def __len__(self) -> int:
        return len(self._attempts)
