"""Calendar dates without a time of day, as used by the availability API."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

_DATE_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})")


def _normalized(year: int, month: int, day: int) -> datetime:
    """Build a UTC midnight, letting months and days overflow into the next unit."""
    carry_year, month_index = divmod(year * 12 + month - 1, 12)
    first = datetime(carry_year, month_index + 1, 1, tzinfo=timezone.utc)
    return first + timedelta(days=day - 1)


@dataclass(frozen=True, order=True)
class Date:
    """A year, month and day."""

    year: int
    month: int
    day: int

    @classmethod
    def parse(cls, text: str | bytes) -> Date:
        """Parse a date written as YYYY-MM-DD."""
        if isinstance(text, bytes):
            text = text.decode()
        match = _DATE_PATTERN.fullmatch(text)
        if match is None:
            raise ValueError(f"cannot parse {text!r} as a date in the form YYYY-MM-DD")
        year, month, day = (int(part) for part in match.groups())
        try:
            date(year, month, day)
        except ValueError as exc:
            raise ValueError(f"cannot parse {text!r}: {exc}") from exc
        return cls(year, month, day)

    @classmethod
    def from_datetime(cls, moment: date) -> Date:
        """Take the calendar date of a date or datetime."""
        return cls(moment.year, moment.month, moment.day)

    def to_datetime(self) -> datetime:
        """Midnight UTC on this date."""
        return _normalized(self.year, self.month, self.day)

    def add(self, years: int, months: int, days: int) -> Date:
        """Shift the date, normalising overflowing days into later months."""
        shifted = _normalized(self.year + years, self.month + months, self.day + days)
        return Date.from_datetime(shifted)

    def to_json(self) -> str:
        """The date as a JSON string literal."""
        return f'"{self}"'

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"