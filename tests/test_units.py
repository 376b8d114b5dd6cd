"""
Tests for duration/data-size parsing and display formatting.
"""

from __future__ import annotations

import pytest

from query_monitor.core.errors import ParseError
from query_monitor.core.units import (
    compute_rate,
    data_size_or_zero,
    duration_or_zero,
    format_count,
    format_data_size,
    format_duration,
    parse_data_size,
    parse_duration,
    precision_round,
)


class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize(
        ("value", "expected_ms"),
        [
            ("1500000ns", 1.5),
            ("250us", 0.25),
            ("12.5ms", 12.5),
            ("1.50s", 1500.0),
            ("2m", 120_000.0),
            ("1h", 3_600_000.0),
            ("1d", 86_400_000.0),
        ],
    )
    def test_units(self, value: str, expected_ms: float) -> None:
        assert parse_duration(value) == pytest.approx(expected_ms)

    def test_units_are_case_insensitive(self) -> None:
        assert parse_duration("3S") == pytest.approx(3000.0)
        assert parse_duration("7MS") == pytest.approx(7.0)

    def test_whitespace_is_tolerated(self) -> None:
        assert parse_duration("  4.00 s ") == pytest.approx(4000.0)

    def test_bare_number_is_nanoseconds(self) -> None:
        assert parse_duration(2_000_000) == pytest.approx(2.0)
        assert parse_duration("3000000") == pytest.approx(3.0)
        assert parse_duration(0) == 0.0

    @pytest.mark.parametrize("value", ["", "abc", "1.5 parsecs", "s", "-1s", "1.2.3s", None, True, [1]])
    def test_malformed_raises(self, value: object) -> None:
        with pytest.raises(ParseError):
            parse_duration(value)

    def test_negative_number_raises(self) -> None:
        with pytest.raises(ParseError):
            parse_duration(-5)

    def test_parse_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_duration("bogus")


class TestParseDataSize:
    """Tests for parse_data_size."""

    @pytest.mark.parametrize(
        ("value", "expected_bytes"),
        [
            ("512B", 512.0),
            ("1kB", 1024.0),
            ("1.5MB", 1.5 * 1024**2),
            ("2GB", 2 * 1024**3),
            ("1TB", 1024**4),
            ("1PB", 1024**5),
        ],
    )
    def test_units_are_binary(self, value: str, expected_bytes: float) -> None:
        assert parse_data_size(value) == pytest.approx(expected_bytes)

    def test_units_are_case_insensitive(self) -> None:
        assert parse_data_size("1kb") == parse_data_size("1KB") == 1024.0

    def test_bare_number_is_bytes(self) -> None:
        assert parse_data_size(4096) == 4096.0
        assert parse_data_size("4096") == 4096.0

    @pytest.mark.parametrize("value", ["12 furlongs", "MB", "", None, False])
    def test_malformed_raises(self, value: object) -> None:
        with pytest.raises(ParseError):
            parse_data_size(value)

    def test_duration_unit_is_not_a_size(self) -> None:
        with pytest.raises(ParseError):
            parse_data_size("5ms")


class TestDegradeToZero:
    """Malformed metrics render as zero instead of raising."""

    def test_duration_or_zero(self) -> None:
        assert duration_or_zero("garbage") == 0.0
        assert duration_or_zero("2s") == pytest.approx(2000.0)

    def test_data_size_or_zero(self) -> None:
        assert data_size_or_zero(None) == 0.0
        assert data_size_or_zero("2kB") == pytest.approx(2048.0)


class TestFormatting:
    """Tests for display formatters."""

    def test_precision_round(self) -> None:
        assert precision_round(3.14159) == "3.14"
        assert precision_round(42.26) == "42.3"
        assert precision_round(512.6) == "513"

    def test_format_duration_ladder(self) -> None:
        assert format_duration(250) == "250ms"
        assert format_duration(1500) == "1.50s"
        assert format_duration(90_000) == "1.50m"
        assert format_duration(2 * 3_600_000) == "2.00h"
        assert format_duration(3 * 86_400_000) == "3.00d"
        assert format_duration(14 * 86_400_000) == "2.00w"

    def test_format_data_size(self) -> None:
        assert format_data_size(0) == "0B"
        assert format_data_size(512) == "512B"
        assert format_data_size(1536) == "1.50kB"
        assert format_data_size(5 * 1024**3) == "5.00GB"

    def test_format_count(self) -> None:
        assert format_count(999) == "999"
        assert format_count(1500) == "1.50K"
        assert format_count(2_500_000) == "2.50M"

    def test_compute_rate(self) -> None:
        assert compute_rate(500, 250) == pytest.approx(2000.0)
        assert compute_rate(500, 0) == 0.0
