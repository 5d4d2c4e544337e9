"""Tests for rolling windows and quiet-hours arithmetic."""

from __future__ import annotations

from datetime import UTC, datetime, time, timedelta, timezone

import pytest

from caregate.windows import (
    DAY,
    HOUR,
    count_within,
    ensure_utc,
    in_quiet_hours,
    parse_hhmm,
    resolve_timezone,
    to_local,
    within_window,
)

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=UTC)


class TestRollingWindows:
    """Test suite for rolling window membership."""

    def test_inside_window(self) -> None:
        assert within_window(NOW - timedelta(minutes=59), NOW, HOUR)

    def test_exact_window_start_is_excluded(self) -> None:
        """A record exactly one span old has aged out."""
        assert not within_window(NOW - HOUR, NOW, HOUR)
        assert not within_window(NOW - DAY, NOW, DAY)

    def test_count_within(self) -> None:
        timestamps = [
            NOW - timedelta(minutes=5),
            NOW - timedelta(minutes=61),
            NOW - timedelta(hours=23),
            NOW - timedelta(hours=25),
        ]

        assert count_within(timestamps, NOW, HOUR) == 1
        assert count_within(timestamps, NOW, DAY) == 3

    def test_ensure_utc_treats_naive_as_utc(self) -> None:
        naive = datetime(2024, 3, 4, 12, 0)

        assert ensure_utc(naive) == NOW
        assert ensure_utc(naive).tzinfo is UTC

    def test_ensure_utc_converts_offsets(self) -> None:
        plus_two = datetime(2024, 3, 4, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        assert ensure_utc(plus_two) == NOW


class TestParseHHMM:
    """Test suite for HH:MM parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("00:00", 0), ("07:45", 745), ("22:00", 2200), ("23:59", 2359), (" 9:05 ", 905)],
    )
    def test_valid(self, value: str, expected: int) -> None:
        assert parse_hhmm(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "12", "12:00:00", "-1:30", ""])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_hhmm(value)


class TestQuietHours:
    """Test suite for quiet-hours membership."""

    @pytest.mark.parametrize(
        ("at", "expected"),
        [
            (time(8, 59), False),
            (time(9, 0), True),
            (time(12, 30), True),
            (time(17, 0), True),
            (time(17, 0, 59), True),
            (time(17, 1), False),
        ],
    )
    def test_daytime_window(self, at: time, expected: bool) -> None:
        assert in_quiet_hours("09:00", "17:00", at) is expected

    @pytest.mark.parametrize(
        ("at", "expected"),
        [
            (time(21, 59), False),
            (time(22, 0), True),
            (time(23, 59), True),
            (time(0, 0), True),
            (time(6, 0), True),
            (time(6, 1), False),
            (time(12, 0), False),
        ],
    )
    def test_window_wrapping_midnight(self, at: time, expected: bool) -> None:
        assert in_quiet_hours("22:00", "06:00", at) is expected

    def test_equal_start_and_end_is_one_minute(self) -> None:
        assert in_quiet_hours("13:00", "13:00", time(13, 0, 30))
        assert not in_quiet_hours("13:00", "13:00", time(13, 1))


class TestTimezones:
    """Test suite for local wall-clock conversion."""

    def test_resolve_known_zone(self) -> None:
        tz = resolve_timezone("America/New_York")

        assert tz is not None
        assert to_local(NOW, tz).hour == 7

    def test_resolve_unknown_zone_falls_back(self) -> None:
        assert resolve_timezone("Mars/Olympus_Mons") is None

    def test_resolve_empty(self) -> None:
        assert resolve_timezone(None) is None
        assert resolve_timezone("") is None

    def test_to_local_without_zone_uses_system_local(self) -> None:
        local = to_local(NOW)

        assert local.tzinfo is not None
        assert local == NOW
