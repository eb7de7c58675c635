"""Tests for log redaction helpers."""

from __future__ import annotations

from teamlock.core.lock.tokens import TokenCodec
from teamlock.core.secrets import REDACTED, redact_dict, redact_text, safe_log_json


class TestRedactText:
    def test_lock_token(self):
        token, _ = TokenCodec("s").mint("TEAM_alpha")
        text = redact_text(f"header X-Team-Lock: {token} rejected")
        assert token not in text
        assert REDACTED in text

    def test_bearer(self):
        assert redact_text("Authorization: Bearer abc.def") == f"Authorization: Bearer {REDACTED}"

    def test_long_hex(self):
        assert "a" * 32 not in redact_text("sig=" + "a" * 32)

    def test_device_hint_length_kept(self):
        # 16-char device hints are already salted hashes.
        assert redact_text("device_hint=0123456789abcdef") == "device_hint=0123456789abcdef"

    def test_empty(self):
        assert redact_text("") == ""


class TestRedactDict:
    def test_sensitive_keys(self):
        out = redact_dict({"code": "ALPHA01", "lockToken": "x", "team_id": "TEAM_alpha"})
        assert out["code"] == REDACTED
        assert out["lockToken"] == REDACTED
        assert out["team_id"] == "TEAM_alpha"

    def test_hashed_code_kept(self):
        assert redact_dict({"hashed_code": "abc123"}) == {"hashed_code": "abc123"}

    def test_nested(self):
        out = redact_dict({"outer": [{"token_secret": "s"}]})
        assert out == {"outer": [{"token_secret": REDACTED}]}

    def test_does_not_mutate(self):
        original = {"code": "ALPHA01"}
        redact_dict(original)
        assert original == {"code": "ALPHA01"}


class TestSafeLogJson:
    def test_oversized_payload_truncated(self):
        event = {"path": "/x", "blob": ["y" * 200] * 100}
        out = safe_log_json(event)
        assert out["path"] == "/x"
