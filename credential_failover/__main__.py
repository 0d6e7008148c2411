"""CLI entry point: python -m credential_failover.

Usage:
    python -m credential_failover --env .env --prompt "Describe this garment" --image shirt.jpg
    python -m credential_failover --env .env --prompt "Hello" --key AIza...
    python -m credential_failover --env .env --dry-run
    python -m credential_failover --env .env --check-config
    python -m credential_failover --self-test
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import mimetypes
import sys
from dataclasses import replace
from pathlib import Path

import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from credential_failover.config import ConfigError, FailoverSettings
from credential_failover.models import Credential


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="credential_failover",
        description="Run a Gemini generation request with automatic API key failover.",
    )
    p.add_argument("--env", type=Path, help="Path to .env file with predefined keys")
    p.add_argument("--prompt", help="Text prompt to send")
    p.add_argument("--image", action="append", type=Path, default=[], metavar="PATH",
                   help="Image to send as inline data (repeatable)")
    p.add_argument("--key", dest="user_key", help="Your own API key, tried before all others")
    p.add_argument("--model", help="Gemini model (default: GEMINI_MODEL or gemini-2.0-flash)")
    p.add_argument("--temperature", type=float, help="Sampling temperature")
    p.add_argument("--backoff", type=float, help="Seconds to wait between failed keys (default: 2)")
    p.add_argument("--timeout", type=float, help="HTTP timeout in seconds (default: 60)")
    p.add_argument("--output", type=Path, help="Write JSON report to file")
    p.add_argument("--json", action="store_true", help="Print JSON report to stdout")
    p.add_argument("--quiet", "-q", action="store_true", help="Suppress table output, only exit code")
    p.add_argument("--verbose", "-v", action="store_true", help="Log each failed key and backoff to stderr")
    p.add_argument("--audit-log", type=Path, help="Append structured run events to this file")
    p.add_argument("--redaction-level", choices=["partial", "full", "hash"], default="partial",
                   help="Key redaction level in output (default: partial)")
    p.add_argument("--force-insecure-output", action="store_true", help="Skip file permission check")
    p.add_argument("--dry-run", action="store_true", help="Show key order without making API calls")
    p.add_argument("--check-config", action="store_true", help="Show configuration health as JSON")
    p.add_argument("--self-test", action="store_true", help="Run failover self-test suite")
    p.add_argument("--version", action="store_true", help="Show version and exit")
    return p


def _image_data_uri(path: Path) -> str:
    mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(path.read_bytes()).decode('ascii')}"


def main() -> int:
    args = _build_parser().parse_args()
    console = Console(quiet=args.quiet)
    err_console = Console(stderr=True)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.ERROR,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )

    if args.version:
        from credential_failover import __version__
        console.print(f"credential_failover {__version__}")
        return 0

    if args.self_test:
        from credential_failover.self_test import run_self_test
        ok = asyncio.run(run_self_test(console))
        return 0 if ok else 1

    if args.env and not args.env.exists():
        err_console.print(f"[red]File not found: {args.env}[/red]")
        return 2

    try:
        settings = FailoverSettings.load(args.env)
    except ConfigError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return 2

    if args.backoff is not None:
        if args.backoff < 0:
            err_console.print("[red]--backoff must not be negative[/red]")
            return 2
        settings = replace(settings, backoff_seconds=args.backoff)
    if args.model:
        settings = replace(settings, model=args.model)
    if args.timeout:
        settings = replace(settings, timeout=args.timeout)

    if args.check_config:
        print(json.dumps(settings.describe(), indent=2))
        return 0

    if args.dry_run:
        pool = settings.orchestrator().new_pool()
        t = Table(title="Dry Run: Key Order", show_lines=True)
        t.add_column("#", justify="right")
        t.add_column("Key", style="cyan")
        t.add_column("Source")
        n = 0
        if args.user_key and args.user_key.strip():
            n += 1
            user = Credential(args.user_key.strip(), "user")
            t.add_row(str(n), f"{user.label()} ({user.display(args.redaction_level)})", user.source)
        for cred in pool.configured:
            n += 1
            t.add_row(str(n), f"{cred.label()} ({cred.display(args.redaction_level)})", cred.source)
        console.print(t)
        console.print(f"\n[bold]{n}[/bold] keys would be tried in this order.")
        return 0

    if not args.prompt:
        err_console.print("[red]--prompt is required (or use --dry-run / --check-config / --self-test)[/red]")
        return 2

    from credential_failover.audit_log import AuditLog
    from credential_failover.gemini import (
        GenerationRequest,
        generate_single_with_failover,
        media_part,
        text_part,
    )
    from credential_failover.output import render_attempts, write_json

    try:
        parts = [media_part(_image_data_uri(p)) for p in args.image]
    except OSError as exc:
        err_console.print(f"[red]Cannot read image: {exc}[/red]")
        return 2
    parts.append(text_part(args.prompt))

    config = {}
    if args.temperature is not None:
        config["temperature"] = args.temperature
    request = GenerationRequest(parts=parts, model=settings.model, config=config)

    audit_log = AuditLog(args.audit_log, args.redaction_level) if args.audit_log else None
    orchestrator = settings.orchestrator(audit_log=audit_log)

    async def _run():
        async with httpx.AsyncClient(timeout=settings.timeout, max_redirects=0) as client:
            return await generate_single_with_failover(orchestrator, request, client, args.user_key)

    outcome = asyncio.run(_run())

    if not args.quiet and not args.json:
        render_attempts(outcome, console, redaction_level=args.redaction_level)
        if outcome.success:
            console.print()
            console.print(outcome.result.text, markup=False)

    if args.json:
        print(json.dumps(outcome.to_dict(args.redaction_level), indent=2, ensure_ascii=False))

    if args.output:
        if not write_json(outcome, args.output, force_insecure=args.force_insecure_output,
                          console=err_console, redaction_level=args.redaction_level):
            return 2

    return 0 if outcome.success else 1


if __name__ == "__main__":
    sys.exit(main())
