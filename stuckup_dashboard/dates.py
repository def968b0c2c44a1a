"""Normalise raw date cells into sortable day keys and short labels."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from dateutil import parser as dateparser
from dateutil.parser import ParserError

# Spreadsheet day-serials count from the day before 1899-12-31.
SERIAL_EPOCH = date(1899, 12, 30)
MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
# Fills the fields a partial string leaves out, so "5" always means the same day.
PARSE_DEFAULT = datetime(1970, 1, 1)


@dataclass(frozen=True)
class DateInfo:
    """A normalised date cell. Equality and hashing look at ``key`` only."""

    key: str
    label: str = field(compare=False)
    instant: Optional[date] = field(default=None, compare=False)

    @property
    def is_dated(self) -> bool:
        return self.instant is not None


def serial_to_date(serial: float) -> date:
    return SERIAL_EPOCH + timedelta(days=math.floor(serial))


def day_key(day: date) -> str:
    return day.isoformat()


def day_label(day: date) -> str:
    return f"{MONTHS[day.month - 1]}-{day.day}"


def _parse_date_string(text: str) -> Optional[date]:
    try:
        parsed = dateparser.parse(text, default=PARSE_DEFAULT)
    except (ParserError, ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def _from_day(day: date) -> DateInfo:
    return DateInfo(key=day_key(day), label=day_label(day), instant=day)


def normalize_date(value: Any) -> Optional[DateInfo]:
    """
    Turn a raw cell into a DateInfo.

    Numbers are day-serials, strings are parsed as dates where possible, and
    anything else non-empty becomes a label-only entry without an instant.
    Empty or whitespace-only cells give None.
    """
    if value is None:
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        try:
            return _from_day(serial_to_date(value))
        except OverflowError:
            pass

    if isinstance(value, datetime):
        return _from_day(value.date())
    if isinstance(value, date):
        return _from_day(value)

    text = str(value).strip()
    if not text:
        return None

    if isinstance(value, str):
        day = _parse_date_string(text)
        if day is not None:
            return _from_day(day)

    return DateInfo(key=text, label=text)
