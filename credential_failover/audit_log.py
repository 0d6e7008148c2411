"""JSON-lines trail of failover runs.

Events are buffered in memory and appended on flush(), one object per line.
Every event carries the id of the run that produced it, so concurrent runs
sharing one log file can be told apart. Credentials are handed in as
Credential objects and only their redacted form is written; no argument
accepts a raw key.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from credential_failover.models import Credential, RedactionLevel

logger = logging.getLogger(__name__)

ROTATE_BYTES = 10 * 1024 * 1024


class AuditLog:
    """Buffered run events, appended to ``path`` with one rotated backup."""

    def __init__(self, path: Path, redaction_level: RedactionLevel | str = RedactionLevel.PARTIAL):
        self.path = Path(path)
        self.redaction_level = RedactionLevel(redaction_level)
        self._pending: list[dict] = []

    def record(
        self,
        run_id: str,
        event: str,
        credential: Optional[Credential] = None,
        **fields: Any,
    ) -> None:
        """Buffer one event. ``None`` fields are left out of the line."""
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "run": run_id,
            "event": event,
        }
        if credential is not None:
            entry["key"] = credential.display(self.redaction_level)
            entry["source"] = credential.source
            if credential.ordinal is not None:
                entry["index"] = credential.ordinal
        entry.update((name, value) for name, value in fields.items() if value is not None)
        self._pending.append(entry)

    @property
    def pending(self) -> tuple[dict, ...]:
        return tuple(self._pending)

    def flush(self) -> int:
        """Append buffered events to the file. Returns how many were written."""
        if not self._pending:
            return 0
        if self.path.is_symlink():
            logger.warning("Audit log %s is a symlink; dropping %d events", self.path, len(self._pending))
            self._pending.clear()
            return 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._rotate_if_full()
        lines = "".join(json.dumps(e, ensure_ascii=False) + "\n" for e in self._pending)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(lines)
        written = len(self._pending)
        self._pending.clear()
        return written

    def _rotate_if_full(self) -> None:
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            return
        if size > ROTATE_BYTES:
            # replace() overwrites the previous backup
            self.path.replace(self.path.with_name(self.path.name + ".1"))
