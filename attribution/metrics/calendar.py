"""
Calendar & distribution pack.

Single source of truth for: earning days, month keys, per-day weight maps.
"""
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set

import numpy as np
import pandas as pd

from attribution.data.semantic import normalize_distribution


LINEAR = "linear"
FRONT_LOADED = "front_loaded"
BACK_LOADED = "back_loaded"


def enumerate_days(start: date, end: date) -> List[date]:
    """Every calendar day from start to end inclusive."""
    if end < start:
        return []
    return [ts.date() for ts in pd.date_range(start, end, freq="D")]


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_bounds(d: date):
    first = d.replace(day=1)
    last = (pd.Timestamp(first) + pd.offsets.MonthEnd(0)).date()
    return first, last


def next_month_bounds(d: date):
    first, last = month_bounds(d)
    return month_bounds(last + timedelta(days=1))


def is_weekend(d: date) -> bool:
    return d.weekday() >= 5


def is_earning_day(d: date, business_days_only: bool, holidays: Set[date]) -> bool:
    if not business_days_only:
        return True
    if is_weekend(d):
        return False
    return d not in holidays


def distribution_weights(days: List[date], distribution_type: Optional[str]) -> Dict[date, float]:
    """
    Weight per day, summing to 1.

    front_loaded falls linearly from 1.5x to 0.5x the mean weight,
    back_loaded rises from 0.5x to 1.5x, anything else is flat.
    """
    n = len(days)
    if n == 0:
        return {}

    kind = normalize_distribution(distribution_type) or LINEAR
    if kind == FRONT_LOADED:
        raw = np.linspace(1.5, 0.5, n) if n > 1 else np.ones(1)
    elif kind == BACK_LOADED:
        raw = np.linspace(0.5, 1.5, n) if n > 1 else np.ones(1)
    else:
        raw = np.ones(n)

    weights = raw / raw.sum()
    return {d: float(w) for d, w in zip(days, weights)}


class MonthCalendar:
    """
    Request-scoped cache of earning days and weight maps per month.

    One instance lives on the ReportContext; nothing is shared across requests.
    """

    def __init__(self, business_days_only: bool = True, holidays: Iterable[date] = ()):
        self.business_days_only = business_days_only
        self.holidays = set(holidays)
        self._month_days: Dict[str, List[date]] = {}
        self._weights: Dict[tuple, Dict[date, float]] = {}

    def is_earning_day(self, d: date) -> bool:
        return is_earning_day(d, self.business_days_only, self.holidays)

    def is_business_day(self, d: date) -> bool:
        return is_earning_day(d, True, self.holidays)

    def earning_days(self, start: date, end: date) -> List[date]:
        return [d for d in enumerate_days(start, end) if self.is_earning_day(d)]

    def business_days(self, start: date, end: date) -> List[date]:
        return [d for d in enumerate_days(start, end) if self.is_business_day(d)]

    def month_days(self, d: date) -> List[date]:
        """Earning days of the whole calendar month containing d."""
        mk = month_key(d)
        if mk not in self._month_days:
            first, last = month_bounds(d)
            self._month_days[mk] = self.earning_days(first, last)
        return self._month_days[mk]

    def weights(self, d: date, distribution_type: Optional[str]) -> Dict[date, float]:
        kind = normalize_distribution(distribution_type) or LINEAR
        if kind not in (FRONT_LOADED, BACK_LOADED):
            kind = LINEAR
        cache_key = (month_key(d), kind)
        if cache_key not in self._weights:
            self._weights[cache_key] = distribution_weights(self.month_days(d), kind)
        return self._weights[cache_key]

    def weight(self, d: date, distribution_type: Optional[str]) -> float:
        return self.weights(d, distribution_type).get(d, 0.0)
