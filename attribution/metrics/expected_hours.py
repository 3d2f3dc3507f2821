"""
Expected hours metrics pack.

Single source of truth for: weighted low/target/high hours per assignment key
and the daily expected-hours series behind the trend.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List

from attribution.data.semantic import AssignmentKey
from attribution.engine.context import ReportContext
from attribution.modeling.benchmarks import BenchmarkIndex


@dataclass
class ExpectedHours:
    """Accumulated expectation for one assignment key."""

    key: AssignmentKey
    role_display: str
    distribution_type: str
    bill_rate: float
    low_period: float = 0.0
    target_period: float = 0.0
    high_period: float = 0.0
    low_to_date: float = 0.0
    target_to_date: float = 0.0
    high_to_date: float = 0.0
    target_daily: Dict[date, float] = field(default_factory=dict)


class ExpectedHoursAccumulator:
    """
    Walks every earning day of the period and spreads each key's monthly
    benchmark over the day's distribution weight.

    Only keys with a version in force by the period end take part; the role
    filter of the context is applied here so everything downstream sees the
    same key set.
    """

    def __init__(self, ctx: ReportContext, index: BenchmarkIndex):
        self.ctx = ctx
        self.index = index
        self.by_key: Dict[AssignmentKey, ExpectedHours] = {}

        for key in index.keys():
            if not ctx.role_included(key.role):
                continue
            at_end = index.version_for(key, ctx.end)
            if at_end is None:
                continue
            self.by_key[key] = ExpectedHours(
                key=key,
                role_display=at_end.role,
                distribution_type=ctx.distribution_for(at_end.distribution_type),
                bill_rate=at_end.bill_rate,
            )

    def accumulate(self) -> Dict[AssignmentKey, ExpectedHours]:
        ctx = self.ctx
        for day in ctx.earning_days:
            to_date = ctx.is_to_date(day)
            for key, acc in self.by_key.items():
                v = self.index.version_for(key, day)
                if v is None:
                    continue
                if ctx.suppress_forward(key.client_id, day):
                    continue

                distribution = ctx.distribution_for(v.distribution_type)
                w = ctx.calendar.weight(day, distribution)
                if w <= 0:
                    continue

                acc.role_display = v.role
                acc.distribution_type = distribution
                acc.bill_rate = v.bill_rate

                acc.low_period += v.low * w
                acc.target_period += v.target * w
                acc.high_period += v.high * w
                acc.target_daily[day] = acc.target_daily.get(day, 0.0) + v.target * w

                if to_date:
                    acc.low_to_date += v.low * w
                    acc.target_to_date += v.target * w
                    acc.high_to_date += v.high * w
        return self.by_key

    def keys_by_pair(self) -> Dict[tuple, List[AssignmentKey]]:
        """Accumulated keys grouped by (client, consultant)."""
        grouped: Dict[tuple, List[AssignmentKey]] = defaultdict(list)
        for key in sorted(self.by_key):
            grouped[(key.client_id, key.consultant_id)].append(key)
        return grouped

