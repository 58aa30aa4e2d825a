"""
Unit tests for time-window resolution.

Tests bounds for each window against a fixed reference time.
"""

from datetime import datetime, timedelta, timezone

import pytest

from analytics_service.core.windows import (
    TimeBounds,
    TimeWindow,
    resolve_window,
    subtract_months,
)

NOW = datetime(2024, 5, 15, 13, 45, 30, tzinfo=timezone.utc)


class TestResolveWindow:
    """Test each symbolic window resolves to the right bounds."""

    def test_unspecified_has_no_bounds(self):
        """Test UNSPECIFIED returns everything."""
        bounds = resolve_window(TimeWindow.UNSPECIFIED, NOW)
        assert bounds.lower is None
        assert bounds.upper is None
        assert bounds.is_unbounded

    def test_today_starts_at_midnight(self):
        """Test TODAY is bounded below by the current UTC midnight."""
        bounds = resolve_window(TimeWindow.TODAY, NOW)
        assert bounds.lower == datetime(2024, 5, 15, tzinfo=timezone.utc)
        assert bounds.upper is None

    def test_yesterday_is_half_open_day(self):
        """Test YESTERDAY covers exactly the previous calendar day."""
        bounds = resolve_window(TimeWindow.YESTERDAY, NOW)
        assert bounds.lower == datetime(2024, 5, 14, tzinfo=timezone.utc)
        assert bounds.upper == datetime(2024, 5, 15, tzinfo=timezone.utc)
        assert bounds.contains(datetime(2024, 5, 14, 23, 59, 59, tzinfo=timezone.utc))
        assert not bounds.contains(datetime(2024, 5, 15, tzinfo=timezone.utc))

    def test_last_week_is_seven_days(self):
        """Test LAST_WEEK is now minus seven days."""
        bounds = resolve_window(TimeWindow.LAST_WEEK, NOW)
        assert bounds.lower == NOW - timedelta(days=7)
        assert bounds.upper is None

    def test_last_month_is_one_calendar_month(self):
        """Test LAST_MONTH steps back one calendar month."""
        bounds = resolve_window(TimeWindow.LAST_MONTH, NOW)
        assert bounds.lower == datetime(2024, 4, 15, 13, 45, 30, tzinfo=timezone.utc)

    def test_last_three_months(self):
        """Test LAST_THREE_MONTHS steps back three calendar months."""
        bounds = resolve_window(TimeWindow.LAST_THREE_MONTHS, NOW)
        assert bounds.lower == datetime(2024, 2, 15, 13, 45, 30, tzinfo=timezone.utc)

    def test_naive_now_is_treated_as_utc(self):
        """Test a naive reference time is interpreted as UTC."""
        bounds = resolve_window(TimeWindow.TODAY, datetime(2024, 5, 15, 13, 45, 30))
        assert bounds.lower == datetime(2024, 5, 15, tzinfo=timezone.utc)

    def test_aware_now_is_converted_to_utc(self):
        """Test day boundaries follow UTC, not the reference time's zone."""
        plus_five = timezone(timedelta(hours=5))
        # 02:00 at UTC+5 is still the previous day in UTC
        now = datetime(2024, 5, 15, 2, 0, tzinfo=plus_five)
        bounds = resolve_window(TimeWindow.TODAY, now)
        assert bounds.lower == datetime(2024, 5, 14, tzinfo=timezone.utc)

    def test_default_now_uses_current_time(self):
        """Test resolving without a reference time uses the clock."""
        before = datetime.now(timezone.utc)
        bounds = resolve_window(TimeWindow.LAST_WEEK)
        after = datetime.now(timezone.utc)
        assert before - timedelta(days=7) <= bounds.lower <= after - timedelta(days=7)

    def test_windows_are_nested(self):
        """Test wider windows always have earlier lower bounds."""
        nested = [
            TimeWindow.TODAY,
            TimeWindow.LAST_WEEK,
            TimeWindow.LAST_MONTH,
            TimeWindow.LAST_THREE_MONTHS,
        ]
        lowers = [resolve_window(window, NOW).lower for window in nested]
        assert lowers == sorted(lowers, reverse=True)


class TestSubtractMonths:
    """Test calendar month arithmetic."""

    def test_crosses_year_boundary(self):
        """Test stepping back past January."""
        assert subtract_months(datetime(2024, 2, 10), 3) == datetime(2023, 11, 10)

    def test_clamps_to_short_month(self):
        """Test the day is clamped to the target month's length."""
        assert subtract_months(datetime(2024, 3, 31), 1) == datetime(2024, 2, 29)
        assert subtract_months(datetime(2023, 3, 31), 1) == datetime(2023, 2, 28)
        assert subtract_months(datetime(2024, 5, 31), 3) == datetime(2024, 2, 29)

    def test_keeps_time_of_day(self):
        """Test only the date part moves."""
        moment = datetime(2024, 7, 1, 8, 30, 15, 123456)
        assert subtract_months(moment, 1) == datetime(2024, 6, 1, 8, 30, 15, 123456)


class TestTimeWindowParse:
    """Test parsing windows from user and wire input."""

    @pytest.mark.parametrize("value,expected", [
        ("today", TimeWindow.TODAY),
        ("LAST_WEEK", TimeWindow.LAST_WEEK),
        ("last-month", TimeWindow.LAST_MONTH),
        (" Yesterday ", TimeWindow.YESTERDAY),
        (5, TimeWindow.LAST_THREE_MONTHS),
        ("2", TimeWindow.YESTERDAY),
        (None, TimeWindow.UNSPECIFIED),
        ("", TimeWindow.UNSPECIFIED),
        (TimeWindow.TODAY, TimeWindow.TODAY),
    ])
    def test_parse_valid_values(self, value, expected):
        """Test names, numbers and enums are accepted."""
        assert TimeWindow.parse(value) is expected

    @pytest.mark.parametrize("value", ["last_year", 9, -1, True, 1.5])
    def test_parse_rejects_unknown_values(self, value):
        """Test unknown windows raise ValueError."""
        with pytest.raises(ValueError, match="Unknown time window"):
            TimeWindow.parse(value)


class TestTimeBounds:
    """Test bound validation and membership."""

    def test_inverted_bounds_rejected(self):
        """Test lower must not come after upper."""
        with pytest.raises(ValueError, match="lower bound"):
            TimeBounds(lower=NOW, upper=NOW - timedelta(seconds=1))

    def test_lower_is_inclusive_upper_exclusive(self):
        """Test interval edges."""
        bounds = TimeBounds(lower=NOW, upper=NOW + timedelta(hours=1))
        assert bounds.contains(NOW)
        assert not bounds.contains(NOW + timedelta(hours=1))
        assert not bounds.contains(NOW - timedelta(microseconds=1))
