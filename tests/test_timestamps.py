"""Tests for log timestamp extraction."""

from datetime import datetime, timedelta, timezone

import pytest

from sqlperf.correlation.timestamps import (
    DefaultTimestampExtractor,
    PatternTimestampExtractor,
    TimestampExtractor,
    make_extractor,
)


def test_default_format_with_offset():
    """Test the fixed log format with a numeric zone offset."""
    extractor = DefaultTimestampExtractor()

    parsed = extractor.extract("2024-05-01T10:15:30.123+0100\tINFO done")

    assert parsed == datetime(
        2024, 5, 1, 10, 15, 30, 123000, tzinfo=timezone(timedelta(hours=1))
    )


def test_quotes_are_stripped():
    """Test that quoted timestamps parse like unquoted ones."""
    extractor = DefaultTimestampExtractor()

    assert extractor.parse("'2024-05-01T10:15:30.123+0000'") == datetime(
        2024, 5, 1, 10, 15, 30, 123000, tzinfo=timezone.utc
    )


def test_iso_fallback_and_naive_as_utc():
    """Test the ISO-8601 fallback, treating naive values as UTC."""
    extractor = DefaultTimestampExtractor()

    assert extractor.parse("2024-05-01T10:15:30") == datetime(
        2024, 5, 1, 10, 15, 30, tzinfo=timezone.utc
    )


def test_no_tab_means_no_token():
    """Test that a line without a tab has no timestamp token."""
    extractor = DefaultTimestampExtractor()

    assert extractor.token("2024-05-01T10:15:30.123+0000 INFO") is None
    assert extractor.extract("2024-05-01T10:15:30.123+0000 INFO") is None


def test_custom_pattern():
    """Test a custom strptime format."""
    extractor = make_extractor("%d/%m/%Y %H:%M:%S")

    assert isinstance(extractor, PatternTimestampExtractor)
    assert extractor.extract("01/05/2024 10:15:30\tINFO") == datetime(
        2024, 5, 1, 10, 15, 30, tzinfo=timezone.utc
    )
    assert extractor.parse("2024-05-01T10:15:30") is None


def test_extractor_requires_parse():
    """Test that an extractor without a parse method cannot be created."""

    class TokenOnly(TimestampExtractor):
        pass

    with pytest.raises(TypeError):
        TokenOnly()

    class EpochMillis(TimestampExtractor):
        def parse(self, token):
            return datetime.fromtimestamp(int(token) / 1000, tz=timezone.utc)

    assert EpochMillis().extract("0\tINFO") == datetime(1970, 1, 1, tzinfo=timezone.utc)
