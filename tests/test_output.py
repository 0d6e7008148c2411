"""Tests for report output, redaction and the audit log file."""

import io
import json
import os
import stat

import pytest
from rich.console import Console

from credential_failover.audit_log import AuditLog
from credential_failover.models import (
    Attempt,
    Credential,
    FailureSummary,
    GenerationOutcome,
    RedactionLevel,
    redact,
)
from credential_failover.output import render_attempts, write_json

RAW = "AIzaSyRAWKEYVALUE1234567890abcdefgh"


def _outcome():
    attempts = (
        Attempt(Credential(RAW, "user"), "failed", "quota_exceeded", "HTTP 429 RESOURCE_EXHAUSTED"),
        Attempt(Credential("AIzaSySECONDKEY00000000000000", "predefined", 0), "succeeded"),
    )
    return GenerationOutcome(success=True, attempts=attempts, result={"text": "ok"},
                             failure_summary=FailureSummary.from_attempts(attempts))


def _quiet():
    return Console(file=io.StringIO())


class TestRedact:
    def test_partial(self):
        assert redact("sk-abcdefghijkl") == "sk-a...ijkl"

    @pytest.mark.parametrize("short", ["short", "twelve-chars"])
    def test_short_key_fully_hidden(self, short):
        assert redact(short) == "[REDACTED]"

    def test_full(self):
        assert redact(RAW, RedactionLevel.FULL) == "[REDACTED]"

    def test_hash_is_stable_and_opaque(self):
        r = redact(RAW, "hash")
        assert r.startswith("sha256:") and len(r) == len("sha256:") + 12
        assert r == redact(RAW, RedactionLevel.HASH)
        assert RAW not in r

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            redact(RAW, "rot13")


class TestRenderAttempts:
    def test_table_has_no_raw_key(self):
        buf = io.StringIO()
        render_attempts(_outcome(), Console(file=buf, width=200))
        text = buf.getvalue()
        assert RAW not in text
        assert "Quota limit exceeded" in text
        assert "Succeeded" in text

    def test_failure_message_shown(self):
        o = GenerationOutcome(success=False, attempts=(), all_keys_exhausted=True, user_message="No API keys available.")
        buf = io.StringIO()
        render_attempts(o, Console(file=buf, width=200))
        assert "No API keys available." in buf.getvalue()


class TestWriteJson:
    def test_writes_report(self, tmp_path):
        path = tmp_path / "report.json"
        assert write_json(_outcome(), path, console=_quiet())
        data = json.loads(path.read_text())
        assert data["success"] is True
        assert data["attempts"][0]["errorType"] == "quota_exceeded"
        assert RAW not in path.read_text()

    def test_new_report_is_owner_only(self, tmp_path):
        path = tmp_path / "report.json"
        assert write_json(_outcome(), path, console=_quiet())
        assert stat.S_IMODE(path.stat().st_mode) & 0o077 == 0

    def test_refuses_symlink(self, tmp_path):
        target = tmp_path / "target.json"
        target.write_text("")
        link = tmp_path / "link.json"
        link.symlink_to(target)
        assert not write_json(_outcome(), link, force_insecure=True, console=_quiet())
        assert target.read_text() == ""

    def test_refuses_hardlinked_file(self, tmp_path):
        target = tmp_path / "target.json"
        target.write_text("")
        os.chmod(target, 0o600)
        os.link(target, tmp_path / "report.json")
        assert not write_json(_outcome(), tmp_path / "report.json", force_insecure=True, console=_quiet())
        assert target.read_text() == ""

    def test_world_readable_needs_force(self, tmp_path):
        path = tmp_path / "report.json"
        path.write_text("")
        os.chmod(path, 0o644)
        assert not write_json(_outcome(), path, console=_quiet())
        assert write_json(_outcome(), path, force_insecure=True, console=_quiet())
        assert json.loads(path.read_text())["success"] is True


class TestAuditLog:
    def test_buffer_then_flush(self, tmp_path):
        log = AuditLog(tmp_path / "logs" / "failover.log")
        log.record("run1", "attempt", Credential(RAW, "predefined", 2))
        assert len(log.pending) == 1
        assert log.flush() == 1
        assert log.pending == ()
        entry = json.loads(log.path.read_text())
        assert entry["run"] == "run1"
        assert entry["event"] == "attempt"
        assert (entry["key"], entry["source"], entry["index"]) == ("AIza...efgh", "predefined", 2)
        assert RAW not in log.path.read_text()

    def test_none_fields_omitted(self, tmp_path):
        log = AuditLog(tmp_path / "failover.log")
        log.record("run1", "run_end", status="exhausted", detail=None)
        assert "detail" not in log.pending[0]
        assert log.pending[0]["status"] == "exhausted"

    def test_redaction_level_applies(self, tmp_path):
        log = AuditLog(tmp_path / "failover.log", "hash")
        log.record("run1", "attempt", Credential(RAW, "user"))
        assert log.pending[0]["key"].startswith("sha256:")

    def test_flush_empty_writes_nothing(self, tmp_path):
        log = AuditLog(tmp_path / "failover.log")
        assert log.flush() == 0
        assert not log.path.exists()

    def test_appends_across_flushes(self, tmp_path):
        log = AuditLog(tmp_path / "failover.log")
        for run in ("a", "b"):
            log.record(run, "run_start")
            log.flush()
        runs = [json.loads(line)["run"] for line in log.path.read_text().splitlines()]
        assert runs == ["a", "b"]

    def test_rotates_when_full(self, tmp_path, monkeypatch):
        monkeypatch.setattr("credential_failover.audit_log.ROTATE_BYTES", 10)
        path = tmp_path / "failover.log"
        path.write_text("x" * 50)
        log = AuditLog(path)
        log.record("run1", "run_start")
        log.flush()
        assert (tmp_path / "failover.log.1").read_text() == "x" * 50
        assert json.loads(path.read_text())["event"] == "run_start"

    def test_refuses_symlink(self, tmp_path):
        target = tmp_path / "target.log"
        target.write_text("")
        link = tmp_path / "failover.log"
        link.symlink_to(target)
        log = AuditLog(link)
        log.record("run1", "run_start")
        assert log.flush() == 0
        assert target.read_text() == ""
