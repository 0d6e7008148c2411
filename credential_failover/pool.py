"""Candidate credential pool for a single failover run.

Selection order: user key, then environment key, then predefined keys in
configured order. Any value already marked failed in this run is skipped.
The failed set is owned by the pool instance and only cleared by reset().
"""

from __future__ import annotations

from typing import Iterable, Optional

from credential_failover.models import Credential


def _usable(value: Optional[str]) -> bool:
    return bool(value and value.strip())


class CredentialPool:
    """Ordered candidates plus the set of values that failed in this run."""

    def __init__(self, predefined: Iterable[str], environment: Optional[str] = None):
        configured: list[str] = []
        for value in predefined:
            if _usable(value) and value not in configured:
                configured.append(value)

        self._environment: Optional[str] = environment if _usable(environment) else None
        if self._environment is not None:
            if self._environment in configured:
                configured.remove(self._environment)
            configured.insert(0, self._environment)

        self._candidates: tuple[Credential, ...] = tuple(
            Credential(
                value=value,
                source="environment" if i == 0 and value == self._environment else "predefined",
                ordinal=i,
            )
            for i, value in enumerate(configured)
        )
        self._failed: set[str] = set()

    @property
    def configured(self) -> tuple[Credential, ...]:
        """Environment + predefined candidates in selection order (no user key)."""
        return self._candidates

    def next_candidate(self, user_credential: Optional[str] = None) -> Optional[Credential]:
        """Return the next credential to try, or None once every candidate failed."""
        if _usable(user_credential) and user_credential not in self._failed:
            return Credential(value=user_credential, source="user")
        for cred in self._candidates:
            if cred.value not in self._failed:
                return cred
        return None

    def mark_failed(self, credential: Credential | str) -> None:
        value = credential.value if isinstance(credential, Credential) else credential
        self._failed.add(value)

    def is_failed(self, credential: Credential | str) -> bool:
        value = credential.value if isinstance(credential, Credential) else credential
        return value in self._failed

    def is_exhausted(self, user_credential: Optional[str] = None) -> bool:
        return self.next_candidate(user_credential) is None

    def remaining_count(self, user_credential: Optional[str] = None) -> int:
        values = {c.value for c in self._candidates}
        if _usable(user_credential):
            values.add(user_credential)
        return len(values - self._failed)

    def reset(self) -> None:
        """Forget all failures. Only valid between runs, never mid-run."""
        self._failed.clear()

    def __len__(self) -> int:
        return len(self._candidates)
