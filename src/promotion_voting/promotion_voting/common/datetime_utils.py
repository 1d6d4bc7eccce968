from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def parse_iso_datetime(value: str) -> datetime:
    """Parse 'YYYY-MM-DD HH:MM[:SS]' or ISO 'YYYY-MM-DDTHH:MM[:SS]'."""
    v = (value or "").strip().replace("T", " ")
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M"):
        try:
            return datetime.strptime(v, fmt)
        except ValueError:
            continue
    raise ValueError(f"invalid datetime: {value!r}")


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now()


def day_window(start_day: date, days: int) -> tuple[datetime, datetime]:
    """00:00 of start_day until 23:59:59 of the last day of a `days`-day window."""
    start = datetime.combine(start_day, time.min)
    end = datetime.combine(start_day + timedelta(days=days - 1), time(23, 59, 59))
    return start, end


@dataclass(frozen=True, order=True)
class StatsPeriod:
    """A calendar month used to bucket punctuality statistics."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= int(self.month) <= 12:
            raise ValueError(f"month out of range: {self.month}")

    @classmethod
    def of(cls, value: date) -> "StatsPeriod":
        return cls(year=value.year, month=value.month)

    def next(self) -> "StatsPeriod":
        if self.month == 12:
            return StatsPeriod(self.year + 1, 1)
        return StatsPeriod(self.year, self.month + 1)

    def contains(self, value: date) -> bool:
        return value.year == self.year and value.month == self.month

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"
