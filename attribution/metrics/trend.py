"""
Trend metrics pack.

Single source of truth for: daily and cumulative series over the period.
Built from the same per-key daily maps as the assignment rows, so the last
cumulative values equal the summary's period totals.
"""
from collections import defaultdict
from datetime import date
from typing import Any, Collection, Dict, List, Mapping

import pandas as pd

from attribution.data.semantic import AssignmentKey, date_str
from attribution.engine.context import ReportContext
from attribution.metrics.actual_hours import ActualHours
from attribution.metrics.expected_hours import ExpectedHours
from attribution.metrics.revenue_attribution import Ledger

DAILY_SERIES = [
    "expected_hours",
    "actual_hours",
    "revenue",
    "expected_cost",
    "actual_cost",
    "software_revenue",
    "software_cost",
]


def _daily(maps: Mapping[AssignmentKey, Any], keys: Collection[AssignmentKey],
           attr: str, rates: Mapping[str, float] = None) -> Dict[date, float]:
    totals: Dict[date, float] = defaultdict(float)
    for key, acc in maps.items():
        if key not in keys:
            continue
        rate = 1.0 if rates is None else rates.get(key.consultant_id, 0.0)
        if rate == 0:
            continue
        for day, value in getattr(acc, attr).items():
            totals[day] += value * rate
    return totals


def build_trend(ctx: ReportContext,
                keys: Collection[AssignmentKey],
                expected: Mapping[AssignmentKey, ExpectedHours],
                actual: Mapping[AssignmentKey, ActualHours],
                revenue: Mapping[AssignmentKey, Ledger],
                software_revenue: Mapping[AssignmentKey, Ledger],
                software_cost: Mapping[AssignmentKey, Ledger],
                cost_rates: Mapping[str, float]) -> List[Dict[str, Any]]:
    """One entry per calendar day with daily and cumulative values."""
    sw_cost = _daily(software_cost, keys, "daily")
    series = {
        "expected_hours": _daily(expected, keys, "target_daily"),
        "actual_hours": _daily(actual, keys, "daily"),
        "revenue": _daily(revenue, keys, "daily"),
        "expected_cost": _daily(expected, keys, "target_daily", cost_rates),
        "actual_cost": _daily(actual, keys, "daily", cost_rates),
        "software_revenue": _daily(software_revenue, keys, "daily"),
        "software_cost": sw_cost,
    }
    # Cost includes software cost, as on the assignment rows
    for day, value in sw_cost.items():
        series["expected_cost"][day] += value
        series["actual_cost"][day] += value

    days = ctx.period_days
    df = pd.DataFrame(
        {f"{name}_daily": [series[name].get(d, 0.0) for d in days] for name in DAILY_SERIES},
        index=days,
    )
    for name in DAILY_SERIES:
        df[f"{name}_cumulative"] = df[f"{name}_daily"].cumsum()

    trend = []
    for day, values in zip(days, df.to_dict(orient="records")):
        entry = {"date": date_str(day)}
        entry.update({k: float(v) for k, v in values.items()})
        trend.append(entry)
    return trend
