"""
Test suite for the collection schedule

Tests end-date and next-due derivation for each cadence, calendar month
arithmetic and input validation.
"""

import pytest
from datetime import date, datetime, timezone

from lending_core.errors import InvalidCadence, InvalidDate, InvalidPeriodCount
from lending_core.schedule import (
    CollectionCadence, add_months, calculate_end_date, calculate_next_due_at,
    parse_start_date
)


class TestCollectionCadence:
    """Test cadence parsing"""

    def test_parse_enum_and_strings(self):
        assert CollectionCadence.parse(CollectionCadence.DAILY) == CollectionCadence.DAILY
        assert CollectionCadence.parse("weekly") == CollectionCadence.WEEKLY
        assert CollectionCadence.parse(" Monthly ") == CollectionCadence.MONTHLY

    def test_parse_rejects_unknown(self):
        with pytest.raises(InvalidCadence):
            CollectionCadence.parse("FORTNIGHTLY")
        with pytest.raises(InvalidCadence):
            CollectionCadence.parse(7)


class TestEndDate:
    """Test loan end date calculation"""

    def test_daily_hundred_periods(self):
        """DAILY over 100 periods ends 100 days after the start"""
        assert calculate_end_date("DAILY", 100, date(2024, 1, 1)) == date(2024, 4, 10)

    def test_weekly(self):
        assert calculate_end_date(CollectionCadence.WEEKLY, 10, date(2024, 1, 1)) == date(2024, 3, 11)

    def test_monthly_uses_calendar_months(self):
        assert calculate_end_date("MONTHLY", 3, date(2024, 1, 15)) == date(2024, 4, 15)
        assert calculate_end_date("MONTHLY", 12, date(2024, 3, 1)) == date(2025, 3, 1)

    def test_monthly_clamps_to_month_end(self):
        """Jan 31 + 1 month lands on the last day of February"""
        assert calculate_end_date("MONTHLY", 1, date(2024, 1, 31)) == date(2024, 2, 29)
        assert calculate_end_date("MONTHLY", 1, date(2023, 1, 31)) == date(2023, 2, 28)

    def test_accepts_iso_string_and_datetime(self):
        assert calculate_end_date("DAILY", 1, "2024-02-28") == date(2024, 2, 29)
        assert calculate_end_date("DAILY", 1, "2024-02-28T10:30:00Z") == date(2024, 2, 29)
        assert calculate_end_date("DAILY", 1, datetime(2024, 2, 28, 23, 59)) == date(2024, 2, 29)

    def test_invalid_inputs(self):
        with pytest.raises(InvalidCadence):
            calculate_end_date("HOURLY", 10, date(2024, 1, 1))
        with pytest.raises(InvalidDate):
            calculate_end_date("DAILY", 10, "not-a-date")
        with pytest.raises(InvalidPeriodCount):
            calculate_end_date("DAILY", 0, date(2024, 1, 1))
        with pytest.raises(InvalidPeriodCount):
            calculate_end_date("DAILY", -3, date(2024, 1, 1))


class TestNextDueAt:
    """Test next-due timestamp derivation"""

    def test_keeps_time_of_day(self):
        now = datetime(2024, 5, 10, 14, 30, tzinfo=timezone.utc)
        assert calculate_next_due_at("DAILY", 1, now) == datetime(2024, 5, 11, 14, 30, tzinfo=timezone.utc)
        assert calculate_next_due_at("WEEKLY", 2, now) == datetime(2024, 5, 24, 14, 30, tzinfo=timezone.utc)
        assert calculate_next_due_at("MONTHLY", 1, now) == datetime(2024, 6, 10, 14, 30, tzinfo=timezone.utc)

    def test_reference_must_be_datetime(self):
        with pytest.raises(InvalidDate):
            calculate_next_due_at("DAILY", 1, date(2024, 5, 10))


class TestHelpers:

    def test_add_months_across_year(self):
        assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)

    def test_parse_start_date(self):
        assert parse_start_date(date(2024, 1, 2)) == date(2024, 1, 2)
        assert parse_start_date("2024-01-02") == date(2024, 1, 2)
        assert parse_start_date(" 2024-01-02T23:15:00+05:30 ") == date(2024, 1, 2)
        with pytest.raises(InvalidDate):
            parse_start_date(None)

    def test_parse_start_date_rejects_trailing_text(self):
        """The whole string must parse; a valid date prefix is not enough"""
        for value in ["2024-03-01garbage", "2024-03-01 x", "2024-3-1", ""]:
            with pytest.raises(InvalidDate):
                parse_start_date(value)
