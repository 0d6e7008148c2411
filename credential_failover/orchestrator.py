"""Failover orchestration engine: sequential retry loop across credentials.

One run walks SELECTING -> INVOKING -> {SUCCEEDED, RETRY, EXHAUSTED}, with
RETRY looping back to SELECTING. Every run gets its own CredentialPool and
AttemptTracker; the only state shared between concurrent runs is the frozen
tuple of predefined key values.

Per-credential failures never reach the caller. They are classified, logged
and recorded in the attempt history, and the loop moves on after a fixed
backoff. Only exhaustion (or cancellation) is reported as a failed outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Iterable, Optional

from credential_failover.aggregator import finalize
from credential_failover.audit_log import AuditLog
from credential_failover.classifier import classify
from credential_failover.models import Credential, GenerationOutcome, RunState
from credential_failover.pool import CredentialPool
from credential_failover.tracker import AttemptTracker

logger = logging.getLogger(__name__)

# Delay between failed attempts, to avoid tripping per-IP rate limits
DEFAULT_BACKOFF_SECONDS = 2.0

CANCELLED_ERROR_TEXT = "Cancelled"

GenerationCallback = Callable[[str], Awaitable[Any]]


class _RunCancelled(Exception):
    """Internal signal: the cancel event fired while a callback was in flight."""


def error_text(exc: BaseException) -> str:
    """The text a failure is classified and recorded by: its message, else its type name."""
    return str(exc).strip() or type(exc).__name__


class FailoverOrchestrator:
    """Drives a generation callback across credentials until one succeeds."""

    def __init__(
        self,
        predefined: Iterable[str] = (),
        environment_credential: Optional[str] = None,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        audit_log: Optional[AuditLog] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.predefined: tuple[str, ...] = tuple(predefined)
        self.environment_credential = environment_credential
        self.backoff_seconds = backoff_seconds
        self._audit_log = audit_log
        self._sleep = sleep

    def new_pool(self) -> CredentialPool:
        return CredentialPool(self.predefined, self.environment_credential)

    def _audit(self, run_id: str, event: str, credential: Optional[Credential] = None, **fields: Any) -> None:
        if self._audit_log is not None:
            self._audit_log.record(run_id, event, credential, **fields)

    async def run(
        self,
        callback: GenerationCallback,
        user_credential: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationOutcome:
        """Run the failover loop and return the terminal outcome.

        ``callback`` receives the raw key value and is awaited without a
        timeout. ``cancel``, when set, stops the loop before the next
        selection, aborts the in-flight callback and interrupts the backoff.
        The audit log is flushed however the run ends, including when the
        surrounding task is cancelled.
        """
        run_id = uuid.uuid4().hex[:8]
        pool = self.new_pool()
        tracker = AttemptTracker()
        self._audit(run_id, "run_start", configured=len(pool), user_key=bool(user_credential))
        try:
            state, result = await self._loop(run_id, pool, tracker, callback, user_credential, cancel)
            outcome = finalize(tracker.history(), state, result=result)
            if state != RunState.SUCCEEDED:
                logger.warning("Failover run ended %s after %d attempts",
                               state.value, len(outcome.attempts))
            self._audit(run_id, "run_end", status=state.value, attempts=len(outcome.attempts))
            return outcome
        except asyncio.CancelledError:
            self._audit(run_id, "run_end", status="abandoned", attempts=len(tracker))
            raise
        finally:
            if self._audit_log is not None:
                self._audit_log.flush()

    async def _loop(
        self,
        run_id: str,
        pool: CredentialPool,
        tracker: AttemptTracker,
        callback: GenerationCallback,
        user_credential: Optional[str],
        cancel: Optional[asyncio.Event],
    ) -> tuple[RunState, Any]:
        while True:
            if cancel is not None and cancel.is_set():
                return RunState.CANCELLED, None

            candidate = pool.next_candidate(user_credential)
            if candidate is None:
                return RunState.EXHAUSTED, None

            handle = tracker.begin(candidate)
            self._audit(run_id, "attempt", candidate)
            start = time.monotonic()
            try:
                result = await self._invoke(callback, candidate, cancel)
            except _RunCancelled:
                tracker.complete(handle, "failed", "unknown", CANCELLED_ERROR_TEXT, aborted=True)
                self._audit(run_id, "attempt_aborted", candidate)
                return RunState.CANCELLED, None
            except Exception as exc:
                latency_ms = round((time.monotonic() - start) * 1000, 1)
                text = error_text(exc)
                kind = classify(text)
                tracker.complete(handle, "failed", kind, text)
                pool.mark_failed(candidate)
                logger.warning("API key failed (%s, %s): %s", candidate.label(), kind, text[:200])
                self._audit(run_id, "attempt_failed", candidate, error_kind=kind, latency_ms=latency_ms)

                if pool.is_exhausted(user_credential):
                    return RunState.EXHAUSTED, None
                if await self._backoff(run_id, cancel):
                    return RunState.CANCELLED, None
                continue

            tracker.complete(handle, "succeeded")
            self._audit(run_id, "attempt_succeeded", candidate,
                        latency_ms=round((time.monotonic() - start) * 1000, 1))
            return RunState.SUCCEEDED, result

    async def _invoke(
        self,
        callback: GenerationCallback,
        credential: Credential,
        cancel: Optional[asyncio.Event],
    ) -> Any:
        if cancel is None:
            return await callback(credential.value)

        task = asyncio.ensure_future(callback(credential.value))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise _RunCancelled()

    async def _backoff(self, run_id: str, cancel: Optional[asyncio.Event]) -> bool:
        """Wait between attempts. Returns True if the run was cancelled meanwhile."""
        if self.backoff_seconds <= 0:
            return cancel is not None and cancel.is_set()
        logger.info("Waiting %.1fs before trying next API key", self.backoff_seconds)
        self._audit(run_id, "backoff", seconds=self.backoff_seconds)
        if cancel is None:
            await self._sleep(self.backoff_seconds)
            return False
        try:
            await asyncio.wait_for(cancel.wait(), timeout=self.backoff_seconds)
        except asyncio.TimeoutError:
            return False
        return True
