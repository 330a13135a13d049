"""Tests for identifier hashing, PII redaction and report sanitizing."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chat_report_server.config import Config
from chat_report_server.privacy import (
    hash_contact_id,
    redact_pii,
    sanitize_report,
    unhash_contact_id,
)


class TestContactHashing:
    """Test salted identifier hashing."""

    def test_hashing_consistency(self):
        salt = b"test_salt_12345"

        hash1 = hash_contact_id("wxid_alice", salt)
        hash2 = hash_contact_id("wxid_alice", salt)

        assert hash1 == hash2
        assert hash1.startswith("hash:")
        assert len(hash1) == 13  # "hash:" + 8 chars

    def test_different_salts(self):
        assert hash_contact_id("wxid_alice", b"salt1") != hash_contact_id("wxid_alice", b"salt2")

    def test_already_hashed_and_empty(self):
        assert hash_contact_id("hash:deadbeef", b"salt") == "hash:deadbeef"
        assert hash_contact_id("", b"salt") == ""

    def test_unhash_against_known_ids(self, isolated_config):
        hashed = hash_contact_id("wxid_alice")

        assert unhash_contact_id(hashed, ["wxid_bob", "wxid_alice"]) == "wxid_alice"
        assert unhash_contact_id(hashed, ["wxid_bob"]) is None
        assert unhash_contact_id("wxid_carol", []) == "wxid_carol"

    def test_session_salt_changes_per_config(self):
        first = Config()
        second = Config()

        assert first.session_salt != second.session_salt
        assert hash_contact_id("wxid_alice", first.session_salt) != hash_contact_id(
            "wxid_alice", second.session_salt
        )


class TestRedaction:
    """Test PII redaction in quoted message text."""

    def test_mobile_number(self):
        redacted = redact_pii("call me 13812345678 tonight")

        assert "13812345678" not in redacted
        assert "138XXXXXX78" in redacted

    def test_email(self):
        redacted = redact_pii("mail zhang.san@example.com")

        assert redacted == "mail zXXXXXXXn@example.com"

    def test_id_card(self):
        redacted = redact_pii("id 11010519491231002X ok")

        assert redacted == "id [ID REDACTED] ok"

    def test_bank_card(self):
        redacted = redact_pii("card 6222 0212 3456 7890")

        assert redacted == "card [CARD REDACTED]"

    def test_plain_text_unchanged(self):
        assert redact_pii("早上好，今天吃什么？") == "早上好，今天吃什么？"
        assert redact_pii("") == ""
        assert redact_pii(None) is None


class TestSanitizeReport:
    """Test the recursive report filter."""

    REPORT = {
        "scope": "2024",
        "contact_id": "wxid_alice",
        "display_name": "Alice",
        "content": "call 13812345678",
        "entries": [{"contact_id": "wxid_bob", "score": 1.0}],
        "peak_day": {"top_contact_id": "wxid_bob", "top_display_name": "Bob"},
        "midnight_king": {"contact_id": None},
    }

    def test_hashes_ids(self, isolated_config):
        result = sanitize_report(self.REPORT, redact=False)

        assert result["contact_id"] == hash_contact_id("wxid_alice")
        assert result["entries"][0]["contact_id"] == hash_contact_id("wxid_bob")
        assert result["peak_day"]["top_contact_id"] == hash_contact_id("wxid_bob")
        assert result["midnight_king"]["contact_id"] is None
        assert result["display_name"] == "Alice"
        assert result["content"] == "call 13812345678"

    def test_redaction(self, isolated_config):
        result = sanitize_report(self.REPORT, redact=True)

        assert result["display_name"] is None
        assert result["peak_day"]["top_display_name"] is None
        assert "13812345678" not in result["content"]
        assert result["scope"] == "2024"

    def test_redact_default_from_config(self, isolated_config):
        isolated_config.privacy.redact_by_default = True

        assert sanitize_report(self.REPORT)["display_name"] is None

    def test_hashing_can_be_disabled(self, isolated_config):
        assert sanitize_report(self.REPORT, hash_ids=False)["contact_id"] == "wxid_alice"

        isolated_config.privacy.hash_identifiers = False
        assert sanitize_report(self.REPORT)["entries"][0]["contact_id"] == "wxid_bob"

    def test_input_not_modified(self, isolated_config):
        sanitize_report(self.REPORT, redact=True)

        assert self.REPORT["contact_id"] == "wxid_alice"
        assert self.REPORT["display_name"] == "Alice"
