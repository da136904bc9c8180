from dataclasses import dataclass, field
from datetime import date, datetime
from typing import FrozenSet, Iterable, Union

import numpy as np
import pandas as pd

from custom_types.errors import DimensionMismatch
from custom_types.types import FloatArray, HOURS_PER_DAY

DateLike = Union[str, date, datetime, pd.Timestamp, float, int]

# Excel serial day numbers count from this date (with the 1900 leap-year bug folded in)
EXCEL_EPOCH = pd.Timestamp("1899-12-30")
EXCEL_SERIAL_LIMIT = 700_000


def to_timestamp(d: DateLike) -> pd.Timestamp:
    """Convert a date-like value to a midnight-normalised Timestamp.

    Numbers below EXCEL_SERIAL_LIMIT are treated as Excel serial day numbers.
    """
    if isinstance(d, (int, float, np.integer, np.floating)) and not isinstance(d, bool):
        if d >= EXCEL_SERIAL_LIMIT:
            raise ValueError(f"Numeric date {d} is not an Excel serial day number")
        return (EXCEL_EPOCH + pd.Timedelta(days=float(d))).normalize()
    return pd.Timestamp(d).normalize()


def hourly_grid(start_date: DateLike, end_date: DateLike) -> pd.DatetimeIndex:
    """Every hour from start_date 00:00 through end_date 23:00 inclusive."""
    start = to_timestamp(start_date)
    end = to_timestamp(end_date)
    if end < start:
        raise ValueError(f"end_date {end.date()} is before start_date {start.date()}")
    return pd.date_range(start, end + pd.Timedelta(hours=HOURS_PER_DAY - 1), freq="h")


def check_whole_days(n_hours: int, what: str = "price path") -> int:
    """Return the number of days in an hourly series, rejecting partial days."""
    if n_hours == 0 or n_hours % HOURS_PER_DAY != 0:
        raise DimensionMismatch(
            f"{what} has {n_hours} hours; expected a positive multiple of {HOURS_PER_DAY}"
        )
    return n_hours // HOURS_PER_DAY


def day_number(dates: pd.DatetimeIndex, origin: pd.Timestamp) -> FloatArray:
    """Fractional days elapsed since origin for each timestamp."""
    return ((dates - origin) / pd.Timedelta(days=1)).to_numpy(dtype=np.float64)


def hour_of_day(dates: pd.DatetimeIndex) -> FloatArray:
    """Hour-ending convention: the midnight-to-1am hour is 1, the last hour is 24."""
    return dates.hour.to_numpy(dtype=np.float64) + 1.0


def day_of_week(dates: pd.DatetimeIndex) -> FloatArray:
    """1 = Sunday, 2 = Monday, ..., 7 = Saturday."""
    return ((dates.dayofweek.to_numpy() + 1) % 7 + 1).astype(np.float64)


@dataclass(frozen=True)
class HolidayCalendar:
    dates: FrozenSet[pd.Timestamp] = field(default_factory=frozenset)

    @classmethod
    def from_dates(cls, dates: Iterable[DateLike]) -> "HolidayCalendar":
        return cls(frozenset(to_timestamp(d) for d in dates))

    def is_holiday(self, dates: pd.DatetimeIndex) -> np.ndarray:
        if not self.dates:
            return np.zeros(len(dates), dtype=bool)
        return dates.normalize().isin(list(self.dates))

    def working_day_mask(self, dates: pd.DatetimeIndex) -> np.ndarray:
        """Monday-Friday and not a holiday."""
        weekday = dates.dayofweek.to_numpy() < 5
        return weekday & ~self.is_holiday(dates)

    def __len__(self):
        return len(self.dates)
