"""
Cost metrics pack.

Single source of truth for: effective hourly cost per consultant.
"""
from typing import Dict, Iterable, Optional

from attribution.data.records import Consultant
from attribution.data.semantic import UNASSIGNED

DEFAULT_CAPACITY_HOURS_PER_WEEK = 40.0
DEFAULT_PERIODS_PER_YEAR = 12
SALARY_LIKE_PAY_TYPES = ("salary", "flat", "flatrate", "flat rate", "fixed", "salary/flat")

# Matched in order; "bi-weekly" and "semi-monthly" must win over "week" / "month"
CYCLE_PERIODS = (
    ("bi", 26),
    ("semi", 24),
    ("week", 52),
    ("month", 12),
    ("quarter", 4),
    ("ann", 1),
)


def periods_per_year(timecard_cycle: Optional[str]) -> int:
    cycle = (timecard_cycle or "").strip().lower()
    for token, periods in CYCLE_PERIODS:
        if token in cycle:
            return periods
    return DEFAULT_PERIODS_PER_YEAR


def effective_hourly_cost(consultant: Optional[Consultant]) -> float:
    """
    Normalise pay into one hourly cost.

    Hourly pay uses the hourly rate (pay rate as fallback). Salary and flat
    rate pay annualise the periodic pay rate over capacity x 52 hours.
    """
    if consultant is None:
        return 0.0

    pay_type = (consultant.pay_type or "").lower()
    hourly_rate = consultant.hourly_rate
    pay_rate = consultant.pay_rate

    if pay_type == "hourly":
        return hourly_rate or pay_rate

    if pay_type in SALARY_LIKE_PAY_TYPES:
        capacity = consultant.capacity_hours_per_week or DEFAULT_CAPACITY_HOURS_PER_WEEK
        annual_pay = pay_rate * periods_per_year(consultant.timecard_cycle)
        annual_hours = capacity * 52
        return annual_pay / annual_hours if annual_hours > 0 else 0.0

    return hourly_rate or pay_rate


def cost_rates(consultants: Iterable[Consultant]) -> Dict[str, float]:
    """Effective hourly cost keyed by consultant id; the unassigned bucket costs nothing."""
    rates = {c.consultant_id: effective_hourly_cost(c) for c in consultants}
    rates[UNASSIGNED] = 0.0
    return rates
