"""
==============================================================================
Deduplicator Tests
==============================================================================

Tests for noise rejection and the duplicate cooldown.

==============================================================================
"""

import logging

from labelscan.scanner.dedup import Deduplicator, normalize_text
from labelscan.scanner.session import Reading
from labelscan.utils.validators import ManualValueValidator


T = 1_700_000_000_000.0


class TestNormalize:
    """Tests for normalize_text."""

    def test_strips(self):
        """Test surrounding whitespace is removed."""
        assert normalize_text("  ABC123\n") == "ABC123"

    def test_none(self):
        """Test None becomes an empty string."""
        assert normalize_text(None) == ""

    def test_non_string(self):
        """Test non-string payloads are stringified."""
        assert normalize_text(12345) == "12345"


class TestDeduplicator:
    """Tests for Deduplicator."""

    def test_short_values_rejected(self):
        """Test values under the minimum length are noise."""
        dedup = Deduplicator(min_length=5)
        assert dedup.is_acceptable("1234") is False
        assert dedup.is_acceptable("12345") is True

    def test_first_value_never_duplicate(self):
        """Test nothing is a duplicate before the first commit."""
        assert Deduplicator().is_duplicate("ABC123", None, None, T) is False

    def test_same_value_within_window(self):
        """Test a repeat within the cooldown is suppressed."""
        dedup = Deduplicator(window_ms=1200)
        assert dedup.is_duplicate("ABC123", "ABC123", T, T + 500) is True

    def test_window_edge_inclusive(self):
        """Test a repeat exactly at the window edge is still a duplicate."""
        dedup = Deduplicator(window_ms=1200)
        assert dedup.is_duplicate("ABC123", "ABC123", T, T + 1200) is True

    def test_same_value_after_window(self):
        """Test a deliberate re-scan after the cooldown is accepted."""
        dedup = Deduplicator(window_ms=1200)
        assert dedup.is_duplicate("ABC123", "ABC123", T, T + 1300) is False

    def test_different_value_immediately(self):
        """Test a new value is accepted right away."""
        dedup = Deduplicator(window_ms=1200)
        assert dedup.is_duplicate("XYZ999", "ABC123", T, T + 10) is False

    def test_suppression_logged(self, caplog):
        """Test a suppressed repeat is logged at debug level."""
        caplog.set_level(logging.DEBUG, logger="labelscan.scanner.dedup")
        Deduplicator(window_ms=1200).is_duplicate("ABC123", "ABC123", T, T + 500)
        assert "Suppressed repeat of 'ABC123' after 500 ms" in caplog.text


class TestReading:
    """Tests for the Reading record."""

    def test_as_dict(self):
        """Test the serialized reading."""
        reading = Reading(timestamp=T, value="ABC123", source_tag="zxingcpp", format="EAN13")
        data = reading.as_dict()
        assert data["value"] == "ABC123"
        assert data["source_tag"] == "zxingcpp"
        assert data["format"] == "EAN13"
        assert len(data["recorded_at"]) == len("2023-11-14 22:13:20")


class TestManualValueValidator:
    """Tests for ManualValueValidator."""

    def test_valid(self):
        """Test a value is trimmed and accepted."""
        assert ManualValueValidator().validate("  4006381333931 ") == (True, "4006381333931", None)

    def test_empty(self):
        """Test empty input."""
        is_valid, _, error = ManualValueValidator().validate("   ")
        assert is_valid is False
        assert error == "Value is required"

    def test_too_short(self):
        """Test input under the minimum length."""
        is_valid, _, error = ManualValueValidator(min_length=6).validate("12345")
        assert is_valid is False
        assert "minimum 6" in error

    def test_pattern(self):
        """Test an optional pattern."""
        validator = ManualValueValidator(pattern=r"\d+")
        assert validator.validate("12345")[0] is True
        assert validator.validate("ABCDE")[0] is False
