# tests/unit/core/test_durations.py
"""Tests for duration parsing and formatting."""

from __future__ import annotations

import pytest

from nodeflow.core.durations import format_duration, parse_duration


class TestParseDuration:
    """Unit strings, bare millisecond counts, and rejects."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("30s", 30.0),
            ("5m", 300.0),
            ("1h", 3600.0),
            ("1m30s", 90.0),
            ("1h30m", 5400.0),
            ("250ms", 0.25),
            ("1.5s", 1.5),
            ("1.5h", 5400.0),
            ("100us", 1e-4),
            ("100µs", 1e-4),
            ("0s", 0.0),
            (" 2s ", 2.0),
        ],
    )
    def test_unit_strings(self, text: str, expected: float) -> None:
        """Compact unit notation parses to seconds."""
        assert parse_duration(text) == pytest.approx(expected)

    def test_integer_is_milliseconds(self) -> None:
        """A bare integer (number or digit string) counts milliseconds."""
        assert parse_duration(1500) == 1.5
        assert parse_duration("1500") == 1.5
        assert parse_duration(0) == 0.0

    def test_negative_duration(self) -> None:
        """A leading minus sign negates the whole duration."""
        assert parse_duration("-1m30s") == -90.0

    @pytest.mark.parametrize("text", ["", "abc", "10x", "s", "1s2", "1 s", "--1s"])
    def test_rejects_malformed(self, text: str) -> None:
        """Malformed strings raise ValueError."""
        with pytest.raises(ValueError):
            parse_duration(text)

    def test_rejects_bool(self) -> None:
        """Booleans are not durations even though bool is an int subclass."""
        with pytest.raises(ValueError):
            parse_duration(True)


class TestFormatDuration:
    """Rendering in the notation parse_duration accepts."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0, "0s"),
            (0.1, "100ms"),
            (1.5, "1.5s"),
            (30, "30s"),
            (90, "1m30s"),
            (3600, "1h0m0s"),
            (-2, "-2s"),
        ],
    )
    def test_format(self, seconds: float, expected: str) -> None:
        assert format_duration(seconds) == expected

    @pytest.mark.parametrize("text", ["30s", "1m30s", "250ms", "2h5m3s"])
    def test_format_parses_back(self, text: str) -> None:
        """Formatted output parses back to the same number of seconds."""
        seconds = parse_duration(text)
        assert parse_duration(format_duration(seconds)) == pytest.approx(seconds)
