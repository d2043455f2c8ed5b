"""Unit tests for timestamp utilities."""

from datetime import datetime, timedelta, timezone

from notifier.utils.timestamps import (
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    seconds_until,
    utc_now,
)


class TestUtcNow:
    def test_utc_now_returns_utc_datetime(self):
        now = utc_now()
        assert now.tzinfo == timezone.utc


class TestEnsureUtc:
    def test_none_passes_through(self):
        assert ensure_utc(None) is None

    def test_naive_is_treated_as_utc(self):
        result = ensure_utc(datetime(2026, 11, 4, 12, 0))
        assert result == datetime(2026, 11, 4, 12, 0, tzinfo=timezone.utc)

    def test_other_timezone_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        result = ensure_utc(datetime(2026, 11, 4, 14, 0, tzinfo=plus_two))
        assert result == datetime(2026, 11, 4, 12, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc


class TestParseIsoDatetime:
    def test_z_suffix(self):
        assert parse_iso_datetime("2026-11-04T12:00:00Z") == datetime(
            2026, 11, 4, 12, 0, tzinfo=timezone.utc
        )

    def test_offset(self):
        assert parse_iso_datetime("2026-11-04T14:00:00+02:00") == datetime(
            2026, 11, 4, 12, 0, tzinfo=timezone.utc
        )

    def test_invalid_returns_none(self):
        assert parse_iso_datetime("not a date") is None
        assert parse_iso_datetime("") is None
        assert parse_iso_datetime(None) is None


class TestFormatTimestamp:
    def test_formats_with_z(self):
        dt = datetime(2026, 11, 4, 12, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_timestamp(dt) == "2026-11-04T12:00:00Z"
        assert format_timestamp(dt, include_microseconds=True) == "2026-11-04T12:00:00.123456Z"

    def test_none_is_empty(self):
        assert format_timestamp(None) == ""


class TestSecondsUntil:
    def test_future_target(self):
        now = datetime(2026, 11, 1, 9, 0, tzinfo=timezone.utc)
        assert seconds_until(now + timedelta(minutes=5, milliseconds=900), now) == 300

    def test_past_target_is_zero(self):
        now = datetime(2026, 11, 1, 9, 0, tzinfo=timezone.utc)
        assert seconds_until(now - timedelta(hours=1), now) == 0
