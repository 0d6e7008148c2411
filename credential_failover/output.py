"""Output formatting: canonical JSON report + Rich attempt table."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from credential_failover.classifier import describe
from credential_failover.models import GenerationOutcome

_STATUS_COLORS = {
    "pending": "cyan",
    "succeeded": "green",
    "failed": "red",
}

_KIND_COLORS = {
    "quota_exceeded": "yellow",
    "invalid_credential": "red",
    "network_error": "blue",
    "unknown": "dim",
}


def render_attempts(
    outcome: GenerationOutcome,
    console: Optional[Console] = None,
    redaction_level: str = "partial",
) -> None:
    """Print the attempt history and a one-line summary."""
    console = console or Console()
    table = Table(title="API Key Attempts", show_lines=True)
    table.add_column("#", justify="right")
    table.add_column("Key", style="cyan")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Error")

    for n, a in enumerate(outcome.attempts, start=1):
        color = _STATUS_COLORS.get(a.status, "white")
        if a.error_kind:
            kind_color = _KIND_COLORS.get(a.error_kind, "white")
            detail = f"[{kind_color}]{describe(a.error_kind)}[/{kind_color}]"
        else:
            detail = ""
        table.add_row(
            str(n),
            Text(f"{a.credential.label()} ({a.credential.display(redaction_level)})"),
            a.credential.source,
            f"[{color}]{a.status}[/{color}]",
            detail,
        )
    console.print(table)

    if outcome.success:
        console.print(f"  [green]Succeeded[/green] after {len(outcome.attempts)} attempt(s)")
    elif outcome.user_message:
        console.print(f"  [red]{outcome.user_message}[/red]")
    s = outcome.failure_summary
    if s:
        parts = []
        if s.quota_exceeded: parts.append(f"{s.quota_exceeded} quota")
        if s.invalid_keys: parts.append(f"{s.invalid_keys} invalid")
        if s.network_errors: parts.append(f"{s.network_errors} network")
        if s.unknown_errors: parts.append(f"{s.unknown_errors} unknown")
        console.print(f"  [dim]{s.total_attempts} failed: {' · '.join(parts)}[/dim]")


def _unsafe_report_target(path: Path, force_insecure: bool) -> Optional[str]:
    """Why a report must not be written to ``path``, or None if it may."""
    if path.is_symlink():
        return "it is a symlink"
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    if not stat.S_ISREG(st.st_mode):
        return "it is not a regular file"
    if st.st_nlink > 1:
        return "it has other hard links"
    if st.st_mode & stat.S_IROTH and not force_insecure:
        return "it is world-readable (use --force-insecure-output to override)"
    return None


def write_json(
    outcome: GenerationOutcome,
    path: Path,
    force_insecure: bool = False,
    console: Optional[Console] = None,
    redaction_level: str = "partial",
) -> bool:
    """Write the canonical JSON report. Returns True on success."""
    console = console or Console(stderr=True)
    reason = _unsafe_report_target(path, force_insecure)
    if reason:
        console.print(f"[red]Refusing to write to {path}: {reason}[/red]")
        return False
    payload = json.dumps(outcome.to_dict(redaction_level), indent=2, ensure_ascii=False) + "\n"
    # Owner-only mode for new reports; never follow a symlink
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_NOFOLLOW", 0), 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(payload)
    console.print(f"[green]Report written to {path}[/green]")
    return True
