"""
Time period descriptors and the mapping of time steps onto calendar steps.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import numpy as np
import pandas as pd

from smi.core.constants import DAYS_PER_YEAR, MONTHS_PER_YEAR
from smi.core.exceptions import ConfigurationError, ErrorContext


@dataclass(frozen=True)
class Period:
    """A date range sampled at ``n_calendar_steps`` steps per year.

    12 means monthly, 365 or 366 daily (29 February shares the calendar step
    of 28 February), any other positive value a plain cyclic step counter.
    """

    y_start: int
    m_start: int
    d_start: int
    y_end: int
    m_end: int
    d_end: int
    n_calendar_steps: int

    def __post_init__(self):
        if self.n_calendar_steps <= 0:
            raise ConfigurationError(
                f"Calendar steps per year must be positive, got {self.n_calendar_steps}",
                ErrorContext(component="period"),
            )
        try:
            start, end = self.start_date, self.end_date
        except ValueError as e:
            raise ConfigurationError(f"Invalid period date: {e}") from e
        if end < start:
            raise ConfigurationError(f"Period ends ({end}) before it starts ({start})")

    @property
    def start_date(self) -> date:
        return date(self.y_start, self.m_start, self.d_start)

    @property
    def end_date(self) -> date:
        return date(self.y_end, self.m_end, self.d_end)

    @property
    def is_monthly(self) -> bool:
        return self.n_calendar_steps == MONTHS_PER_YEAR

    @property
    def is_daily(self) -> bool:
        return self.n_calendar_steps in (DAYS_PER_YEAR, DAYS_PER_YEAR + 1)

    @property
    def calendar_size(self) -> int:
        """Number of distinct calendar steps (kernel groups) per year"""
        if self.is_daily:
            return DAYS_PER_YEAR
        return self.n_calendar_steps

    def time_index(self) -> pd.Index:
        """Index labelling every time step of the period"""
        if self.is_monthly:
            return pd.period_range(
                pd.Period(year=self.y_start, month=self.m_start, freq="M"),
                pd.Period(year=self.y_end, month=self.m_end, freq="M"),
                freq="M",
            ).to_timestamp()
        if self.is_daily:
            return pd.date_range(self.start_date, self.end_date, freq="D")
        n_years = self.y_end - self.y_start + 1
        return pd.RangeIndex(n_years * self.n_calendar_steps)

    @property
    def n_steps(self) -> int:
        return len(self.time_index())

    def calendar_steps(self) -> np.ndarray:
        """0-based calendar step of every time step"""
        index = self.time_index()
        if self.is_monthly:
            return np.asarray(index.month, dtype=int) - 1
        if self.is_daily:
            doy = np.asarray(index.dayofyear, dtype=int) - 1
            past_feb28 = np.asarray(index.is_leap_year) & (
                (np.asarray(index.month) > 2)
                | ((np.asarray(index.month) == 2) & (np.asarray(index.day) == 29))
            )
            return doy - past_feb28.astype(int)
        return np.arange(len(index)) % self.n_calendar_steps


def check_consistent(reference: Period, other: Period, name: str = "evaluation") -> None:
    """Ensure ``other`` uses the same calendar as the estimation period."""
    if reference.calendar_size != other.calendar_size:
        raise ConfigurationError(
            f"The {name} period has {other.calendar_size} calendar steps per year, "
            f"the estimation period {reference.calendar_size}",
            ErrorContext(component="period", operation="check_consistent"),
        )
