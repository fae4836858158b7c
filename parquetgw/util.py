"""Calendar days, closed-interval arithmetic and small collection helpers."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)
_ONE_DAY = timedelta(days=1)


def _from_millis(ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=ms)


def _to_millis(moment: datetime) -> int:
    return (moment - _EPOCH) // _ONE_MS


@dataclass(frozen=True, order=True)
class Date:
    """A UTC calendar day."""

    year: int
    month: int
    day: int

    def __post_init__(self) -> None:
        date(self.year, self.month, self.day)

    def __str__(self) -> str:
        return date(self.year, self.month, self.day).isoformat()

    def to_datetime(self) -> datetime:
        """Midnight UTC at the start of the day."""
        return datetime(self.year, self.month, self.day, tzinfo=timezone.utc)

    def min_t(self) -> int:
        """Start of the day in milliseconds since the epoch."""
        return _to_millis(self.to_datetime())

    def max_t(self) -> int:
        """Start of the following day in milliseconds since the epoch."""
        return _to_millis(self.to_datetime() + _ONE_DAY)


def split_into_dates(mint: int, maxt: int) -> list[Date]:
    """Return every UTC day touched by the millisecond range, always at least one."""
    start = _from_millis(mint)
    end = _from_millis(maxt)
    dates: list[Date] = []
    while True:
        dates.append(Date(start.year, start.month, start.day))
        start = datetime(start.year, start.month, start.day, tzinfo=timezone.utc) + _ONE_DAY
        if not start < end:
            return dates


def intersects(a: int, b: int, c: int, d: int) -> bool:
    """Whether [a, b] and [c, d] intersect."""
    return not (c > b or a > d)


def contains(a: int, b: int, c: int, d: int) -> bool:
    """Whether [a, b] contains [c, d]."""
    return a <= c and b >= d


def intersection(a: int, b: int, c: int, d: int) -> tuple[int, int]:
    """The intersection of [a, b] and [c, d]; check :func:`intersects` first."""
    return max(a, c), min(b, d)


def sort_unique(values: Iterable[str]) -> list[str]:
    """Sorted list of the distinct values."""
    return sorted(set(values))