"""Tests for external identity resolution."""

import logging

from crm_sync.services.checksum import compute_checksum
from crm_sync.services.identity_resolver import resolve_external_id


class TestPreferredField:
    """Tests for records resolved through a preferred field."""

    def test_string_value_is_trimmed(self):
        assert resolve_external_id({"sourceId": "  42 "}, 0, "sourceId") == "42"

    def test_number_value_is_stringified(self):
        assert resolve_external_id({"ticketId": 17}, 0, "ticketId") == "17"
        assert resolve_external_id({"ticketId": 17.0}, 0, "ticketId") == "17"
        assert resolve_external_id({"ticketId": 1.5}, 0, "ticketId") == "1.5"

    def test_missing_value_fails_resolution(self):
        """Test that a preferred field never falls back to other keys."""
        record = {"id": "fallback-should-not-be-used"}
        assert resolve_external_id(record, 3, "sourceId") is None

    def test_unusable_values_fail_resolution(self):
        for value in ("   ", None, float("nan"), True, {"nested": 1}):
            assert resolve_external_id({"sourceId": value}, 0, "sourceId") is None


class TestFallbackFields:
    """Tests for records resolved without a preferred field."""

    def test_first_matching_key_wins(self):
        record = {"email": "a@example.com", "code": "C-1", "name": "Alice"}
        assert resolve_external_id(record, 0) == "C-1"

    def test_source_id_has_priority_over_id(self):
        assert resolve_external_id({"id": 5, "sourceId": "src-5"}, 0) == "src-5"

    def test_blank_values_are_skipped(self):
        assert resolve_external_id({"sourceId": "", "id": "  ", "path": "/docs/a.pdf"}, 0) == "/docs/a.pdf"

    def test_checksum_fallback_with_warning(self, caplog):
        """Test that a record without identity keys is keyed by its checksum."""
        record = {"title": "untitled", "amount": 10}

        with caplog.at_level(logging.WARNING, logger="crm_sync.services.identity_resolver"):
            resolved = resolve_external_id(record, 7)

        assert resolved == compute_checksum(record)
        assert "checksum fallback" in caplog.text
        assert resolved[:12] in caplog.text
        assert "index 7" in caplog.text
