"""Tests for credential_failover.models."""

import json

import pytest

from credential_failover.models import (
    ERROR_KINDS,
    Attempt,
    Credential,
    FailureSummary,
    GenerationOutcome,
)

RAW = "AIzaSySUPERSECRETKEY1234567890abcdef"


def _failed(kind, value="key-value-123456"):
    return Attempt(Credential(value, "predefined", 0), "failed", kind, f"boom {kind}")


class TestCredential:
    def test_repr_hides_value(self):
        c = Credential(RAW, "user")
        assert RAW not in repr(c)
        assert RAW not in str(c)

    def test_display_partial(self):
        assert Credential(RAW, "user").display() == "AIza...cdef"

    def test_display_full(self):
        assert Credential(RAW, "user").display("full") == "[REDACTED]"

    @pytest.mark.parametrize("source,ordinal,label", [
        ("environment", 0, "environment key"),
        ("user", None, "user key"),
        ("predefined", 2, "API key #3"),
    ])
    def test_label(self, source, ordinal, label):
        assert Credential("x" * 20, source, ordinal).label() == label

    def test_frozen(self):
        c = Credential(RAW, "user")
        with pytest.raises(AttributeError):
            c.value = "other"  # type: ignore[misc]

    def test_unknown_source_rejected(self):
        with pytest.raises(ValueError, match="Unknown credential source"):
            Credential(RAW, "vault")  # type: ignore[arg-type]


class TestAttemptSerialization:
    def test_pending_is_trying(self):
        a = Attempt(Credential(RAW, "user"))
        assert a.to_dict() == {"key": "AIza...cdef", "source": "user", "status": "trying"}

    def test_success_with_index(self):
        a = Attempt(Credential(RAW, "predefined", 1), "succeeded")
        assert a.to_dict() == {"key": "AIza...cdef", "source": "predefined", "index": 1, "status": "success"}

    def test_canonical_field_order(self):
        keys = list(_failed("quota_exceeded").to_dict().keys())
        assert keys == ["key", "source", "index", "status", "error", "errorType"]

    @pytest.mark.parametrize("kind,wire", [
        ("quota_exceeded", "quota_exceeded"),
        ("invalid_credential", "invalid_key"),
        ("network_error", "network_error"),
        ("unknown", "unknown_error"),
    ])
    def test_error_type_wire_names(self, kind, wire):
        assert _failed(kind).to_dict()["errorType"] == wire

    def test_error_truncated(self):
        a = Attempt(Credential(RAW, "user"), "failed", "unknown", "x" * 500)
        assert len(a.to_dict()["error"]) == 200

    def test_no_raw_key_in_output(self):
        a = Attempt(Credential(RAW, "user"), "failed", "unknown", "err")
        assert RAW not in json.dumps(a.to_dict())
        assert RAW not in repr(a)


class TestFailureSummary:
    def test_counts_only_failed(self):
        attempts = [
            _failed("quota_exceeded"),
            _failed("quota_exceeded"),
            _failed("network_error"),
            Attempt(Credential("ok-key-value", "user"), "succeeded"),
        ]
        s = FailureSummary.from_attempts(attempts)
        assert s.total_attempts == 3
        assert (s.quota_exceeded, s.invalid_keys, s.network_errors, s.unknown_errors) == (2, 0, 1, 0)

    def test_aborted_attempts_not_counted(self):
        aborted = Attempt(Credential("key-value-999999", "predefined", 1), "failed", "unknown", "Cancelled", aborted=True)
        s = FailureSummary.from_attempts([_failed("network_error"), aborted])
        assert (s.total_attempts, s.network_errors, s.unknown_errors) == (1, 1, 0)

    def test_counts_sum_to_total(self):
        attempts = [_failed(k) for k in ERROR_KINDS for _ in range(2)]
        s = FailureSummary.from_attempts(attempts)
        assert sum(s.count(k) for k in ERROR_KINDS) == s.total_attempts == 8

    def test_to_dict_keys(self):
        s = FailureSummary(2, 1, 0, 1, 0)
        assert s.to_dict() == {
            "totalAttempts": 2, "quotaExceeded": 1, "invalidKeys": 0,
            "networkErrors": 1, "unknownErrors": 0,
        }


class TestGenerationOutcome:
    def test_success_shape(self):
        attempts = (Attempt(Credential(RAW, "environment", 0), "succeeded"),)
        d = GenerationOutcome(success=True, attempts=attempts, result={"text": "hi"}).to_dict()
        assert list(d.keys()) == ["success", "result", "allKeysExhausted", "attempts"]
        assert d["result"] == {"text": "hi"}

    def test_failure_shape(self):
        attempts = (_failed("quota_exceeded"),)
        out = GenerationOutcome(
            success=False, attempts=attempts, all_keys_exhausted=True,
            failure_summary=FailureSummary.from_attempts(attempts), user_message="no luck",
        )
        d = out.to_dict()
        assert "result" not in d
        assert d["allKeysExhausted"] is True
        assert d["failureSummary"]["quotaExceeded"] == 1
        assert d["error"] == "no luck"
        assert "cancelled" not in d

    def test_result_to_dict_used(self):
        class Payload:
            def to_dict(self):
                return {"text": "converted"}

        attempts = (Attempt(Credential(RAW, "user"), "succeeded"),)
        d = GenerationOutcome(success=True, attempts=attempts, result=[Payload()]).to_dict()
        assert d["result"] == [{"text": "converted"}]

    def test_succeeded_with(self):
        winner = Credential(RAW, "predefined", 1)
        attempts = (_failed("unknown"), Attempt(winner, "succeeded"))
        assert GenerationOutcome(success=True, attempts=attempts).succeeded_with == winner

    def test_json_stable(self):
        attempts = (_failed("network_error"),)
        out = GenerationOutcome(success=False, attempts=attempts, all_keys_exhausted=True)
        assert json.dumps(out.to_dict()) == json.dumps(out.to_dict())
