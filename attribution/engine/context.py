"""
Report request parsing and the per-request computation context.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from functools import cached_property
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from attribution.config import PerformanceSettings
from attribution.data.semantic import normalize_id, normalize_role, to_date
from attribution.engine.errors import ReportValidationError
from attribution.metrics.calendar import MonthCalendar, enumerate_days


def parse_date_input(value: Any) -> Optional[date]:
    """YYYY-MM-DD strings, dates and timestamps; None when unusable."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_date(value)


def normalize_id_list(value: Any) -> Tuple[str, ...]:
    """Accept a list or a comma separated string; malformed entries are dropped."""
    if value is None:
        return ()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = value
    else:
        return ()
    ids = []
    for item in items:
        try:
            nid = normalize_id(item)
        except (TypeError, ValueError):
            nid = None
        if nid and nid not in ids:
            ids.append(nid)
    return tuple(ids)


@dataclass(frozen=True)
class ReportRequest:
    start_date: Any
    end_date: Any
    as_of_date: Any = None
    client_ids: Sequence[Any] = ()
    consultant_ids: Sequence[Any] = ()
    role: Optional[str] = None
    include_submitted: bool = False
    business_days_only: bool = True

    def resolve_dates(self) -> Tuple[date, date, date]:
        """Validate the period and clamp as-of into it."""
        start = parse_date_input(self.start_date)
        end = parse_date_input(self.end_date)
        if start is None or end is None:
            raise ReportValidationError("Invalid start_date or end_date (expected YYYY-MM-DD)")
        if end < start:
            raise ReportValidationError("end_date must be on or after start_date")

        as_of = parse_date_input(self.as_of_date) or end
        as_of = min(max(as_of, start), end)
        return start, end, as_of

    @property
    def role_filter(self) -> Optional[str]:
        if self.role is None:
            return None
        norm = normalize_role(self.role)
        return norm or None

    @property
    def statuses(self) -> Tuple[str, ...]:
        return ("Approved", "Submitted") if self.include_submitted else ("Approved",)


@dataclass
class ReportContext:
    """
    Everything a component needs besides the reference data.

    Holds as-of and today explicitly so no component reads the clock, and the
    request-scoped calendar caches.
    """

    start: date
    end: date
    as_of: date
    today: date
    calendar: MonthCalendar
    settings: PerformanceSettings
    role_filter: Optional[str] = None
    client_active: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def build(cls, start: date, end: date, as_of: date, today: date,
              settings: PerformanceSettings, holidays: Iterable[date] = (),
              business_days_only: bool = True, role_filter: Optional[str] = None,
              client_active: Optional[Dict[str, bool]] = None) -> "ReportContext":
        return cls(
            start=start,
            end=end,
            as_of=as_of,
            today=today,
            calendar=MonthCalendar(business_days_only, holidays),
            settings=settings,
            role_filter=role_filter,
            client_active=dict(client_active or {}),
        )

    @cached_property
    def period_days(self) -> List[date]:
        return enumerate_days(self.start, self.end)

    @cached_property
    def earning_days(self) -> List[date]:
        return [d for d in self.period_days if self.calendar.is_earning_day(d)]

    @cached_property
    def earning_days_to_date(self) -> List[date]:
        return [d for d in self.earning_days if d <= self.as_of]

    def is_to_date(self, d: date) -> bool:
        return d <= self.as_of

    def is_client_active(self, client_id: str) -> bool:
        # Unknown clients are treated as active
        return self.client_active.get(client_id, True)

    def suppress_forward(self, client_id: str, d: date) -> bool:
        """No forward-looking expectation or revenue for inactive clients."""
        return not self.is_client_active(client_id) and d > self.today

    def distribution_for(self, distribution_type: Optional[str]) -> str:
        return distribution_type or self.settings.default_distribution_type or "linear"

    def role_included(self, role_norm: str) -> bool:
        return self.role_filter is None or role_norm == self.role_filter
