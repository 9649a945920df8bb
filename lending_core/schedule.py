"""
Collection Schedule Calculator

Derives a loan's end date and an installment's next-due timestamp from a
collection cadence and a count of cadence units. Monthly offsets use calendar
month arithmetic (month-end clamped), never fixed 30-day blocks.
"""

from datetime import datetime, date, timedelta
from enum import Enum
from typing import Union
import calendar

from .errors import InvalidCadence, InvalidDate, InvalidPeriodCount


class CollectionCadence(Enum):
    """How often installments are collected"""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"

    @classmethod
    def parse(cls, value: Union['CollectionCadence', str]) -> 'CollectionCadence':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise InvalidCadence(
            f"Invalid collection cadence: {value!r}",
            {"cadence": value, "allowed": ", ".join(c.value for c in cls)}
        )


def add_months(start: date, months: int) -> date:
    """Add calendar months to a date, clamping to the last day of the month"""
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def parse_date(value: Union[date, datetime, str], field_name: str = "date") -> date:
    """
    Accept a date, a datetime or a whole ISO-8601 date or timestamp string.
    A trailing "Z" is read as UTC; anything else after the date is rejected.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise InvalidDate(f"Invalid {field_name.replace('_', ' ')}: {value!r}", {field_name: value})


def parse_start_date(value: Union[date, datetime, str]) -> date:
    return parse_date(value, "start_date")


def _validate_units(units: int) -> int:
    if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
        raise InvalidPeriodCount(
            f"Period count must be a positive integer, got {units!r}",
            {"period_count": units}
        )
    return units


def offset(cadence: Union[CollectionCadence, str], units: int,
           reference: Union[date, datetime]) -> Union[date, datetime]:
    """Move ``reference`` forward by ``units`` cadence units"""
    cadence = CollectionCadence.parse(cadence)
    units = _validate_units(units)

    if cadence == CollectionCadence.DAILY:
        return reference + timedelta(days=units)
    elif cadence == CollectionCadence.WEEKLY:
        return reference + timedelta(days=units * 7)
    else:
        return add_months(reference, units)


def calculate_end_date(cadence: Union[CollectionCadence, str], period_count: int,
                       start_date: Union[date, datetime, str]) -> date:
    """
    Loan end date: ``period_count`` cadence units after the start date.

    Raises:
        InvalidCadence: cadence is not DAILY, WEEKLY or MONTHLY
        InvalidDate: start_date does not parse
        InvalidPeriodCount: period_count is not a positive integer
    """
    cadence = CollectionCadence.parse(cadence)
    return offset(cadence, period_count, parse_start_date(start_date))


def calculate_next_due_at(cadence: Union[CollectionCadence, str], units: int,
                          reference: datetime) -> datetime:
    """
    Next-due timestamp for an installment written at ``reference``.

    The ledger re-derives this on every write, so it is never cached.
    """
    if not isinstance(reference, datetime):
        raise InvalidDate(f"Reference must be a datetime, got {reference!r}", {"reference": reference})
    return offset(cadence, units, reference)
