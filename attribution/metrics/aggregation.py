"""
Aggregation & variance metrics pack.

Single source of truth for: assignment rows, rollups by client and role,
and the report summary.

CRITICAL: every rollup is a plain sum of assignment-row fields, so a parent's
hours, revenue, cost and margin always equal the sum of its children.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from attribution.data.semantic import (
    UNASSIGNED,
    UNASSIGNED_LABEL,
    UNBENCHMARKED_LABEL,
    UNKNOWN_CLIENT_LABEL,
    UNKNOWN_CONSULTANT_LABEL,
    AssignmentKey,
)
from attribution.engine.context import ReportContext
from attribution.metrics.actual_hours import ActualHours
from attribution.metrics.expected_hours import ExpectedHours
from attribution.metrics.issues import hours_variance_severity
from attribution.metrics.revenue_attribution import Ledger


# Additive fields carried from assignment rows into every rollup
SUM_FIELDS = [
    "expected_hours_period",
    "expected_hours_to_date",
    "actual_hours_period",
    "actual_hours_to_date",
    "projected_hours_period",
    "revenue_period",
    "revenue_to_date",
    "expected_cost_period",
    "expected_cost_to_date",
    "actual_cost_period",
    "actual_cost_to_date",
    "projected_cost_period",
    "expected_gm_period",
    "expected_gm_to_date",
    "actual_gm_period",
    "actual_gm_to_date",
    "projected_gm_period",
    "software_revenue_period",
    "software_revenue_to_date",
    "software_cost_period",
    "software_cost_to_date",
    "service_revenue_period",
    "service_revenue_to_date",
    "service_cost_period",
    "service_cost_to_date",
]

UNSPECIFIED_ROLE_LABEL = "(Unspecified Role)"


def projected_hours(expected_period: float, expected_to_date: float, actual_to_date: float,
                    earning_days: int, earning_days_to_date: int) -> float:
    """
    Actual to date plus the expectation still to come; without an
    expectation, actual to date run-rated over the period's earning days.
    """
    if expected_period > 0:
        return actual_to_date + max(0.0, expected_period - expected_to_date)
    if earning_days_to_date > 0:
        return actual_to_date * (earning_days / max(1, earning_days_to_date))
    return actual_to_date


def _ledger_value(ledgers: Mapping[AssignmentKey, Ledger], key: AssignmentKey, attr: str) -> float:
    ledger = ledgers.get(key)
    return getattr(ledger, attr) if ledger is not None else 0.0


def build_assignment_rows(ctx: ReportContext,
                          expected: Mapping[AssignmentKey, ExpectedHours],
                          actual: Mapping[AssignmentKey, ActualHours],
                          revenue: Mapping[AssignmentKey, Ledger],
                          software_revenue: Mapping[AssignmentKey, Ledger],
                          software_cost: Mapping[AssignmentKey, Ledger],
                          cost_rates: Mapping[str, float],
                          client_names: Mapping[str, str],
                          consultant_names: Mapping[str, str],
                          excluded_clients: Iterable[Optional[str]] = ()) -> List[Dict[str, Any]]:
    """Join the three accumulators into one row per assignment key."""
    excluded = {c for c in excluded_clients if c}
    keys = set(expected) | set(actual) | set(revenue)
    earning_days = len(ctx.earning_days)
    earning_days_to_date = len(ctx.earning_days_to_date)

    rows = []
    for key in sorted(keys):
        if not ctx.role_included(key.role) or key.client_id in excluded:
            continue

        exp = expected.get(key)
        act = actual.get(key)
        rev = revenue.get(key)

        if key.is_unassigned:
            consultant_name = UNASSIGNED_LABEL
        else:
            consultant_name = consultant_names.get(key.consultant_id, UNKNOWN_CONSULTANT_LABEL)

        cost_rate = 0.0 if key.consultant_id == UNASSIGNED else cost_rates.get(key.consultant_id, 0.0)

        expected_period = exp.target_period if exp else 0.0
        expected_to_date = exp.target_to_date if exp else 0.0
        low_to_date = exp.low_to_date if exp else 0.0
        high_to_date = exp.high_to_date if exp else 0.0
        actual_period = act.period if act else 0.0
        actual_to_date = act.to_date if act else 0.0
        projected_period = projected_hours(expected_period, expected_to_date, actual_to_date,
                                           earning_days, earning_days_to_date)

        revenue_period = rev.period if rev else 0.0
        revenue_to_date = rev.to_date if rev else 0.0
        sw_revenue_period = _ledger_value(software_revenue, key, "period")
        sw_revenue_to_date = _ledger_value(software_revenue, key, "to_date")
        sw_cost_period = _ledger_value(software_cost, key, "period")
        sw_cost_to_date = _ledger_value(software_cost, key, "to_date")

        # Cost is labour plus software
        expected_cost_period = expected_period * cost_rate + sw_cost_period
        expected_cost_to_date = expected_to_date * cost_rate + sw_cost_to_date
        actual_cost_period = actual_period * cost_rate + sw_cost_period
        actual_cost_to_date = actual_to_date * cost_rate + sw_cost_to_date
        projected_cost_period = projected_period * cost_rate + sw_cost_period

        variance_hours = actual_to_date - expected_to_date
        variance_pct = variance_hours / expected_to_date if expected_to_date > 0 else None

        if exp is not None and exp.role_display:
            role = exp.role_display
        elif key.is_unbenchmarked:
            role = UNBENCHMARKED_LABEL
        else:
            role = key.role

        rows.append({
            "key": str(key),
            "client_id": key.client_id,
            "client_name": client_names.get(key.client_id, UNKNOWN_CLIENT_LABEL),
            "consultant_id": key.consultant_id,
            "consultant_name": consultant_name,
            "role": role,
            "role_key": key.role,
            "contract_type": rev.contract_type if rev else None,
            "distribution_type": exp.distribution_type if exp else "linear",
            "bill_rate": exp.bill_rate if exp else (rev.bill_rate if rev else 0.0),

            "expected_hours_period": expected_period,
            "expected_hours_to_date": expected_to_date,
            "expected_low_hours_to_date": low_to_date,
            "expected_high_hours_to_date": high_to_date,
            "actual_hours_period": actual_period,
            "actual_hours_to_date": actual_to_date,
            "projected_hours_period": projected_period,
            "variance_to_date_hours": variance_hours,
            "variance_to_date_pct": variance_pct,

            "revenue_period": revenue_period,
            "revenue_to_date": revenue_to_date,
            "expected_cost_period": expected_cost_period,
            "expected_cost_to_date": expected_cost_to_date,
            "actual_cost_period": actual_cost_period,
            "actual_cost_to_date": actual_cost_to_date,
            "projected_cost_period": projected_cost_period,
            "expected_gm_period": revenue_period - expected_cost_period,
            "expected_gm_to_date": revenue_to_date - expected_cost_to_date,
            "actual_gm_period": revenue_period - actual_cost_period,
            "actual_gm_to_date": revenue_to_date - actual_cost_to_date,
            "projected_gm_period": revenue_period - projected_cost_period,

            "software_revenue_period": sw_revenue_period,
            "software_revenue_to_date": sw_revenue_to_date,
            "software_cost_period": sw_cost_period,
            "software_cost_to_date": sw_cost_to_date,
            "software_gm_period": sw_revenue_period - sw_cost_period,
            "software_gm_to_date": sw_revenue_to_date - sw_cost_to_date,
            "service_revenue_period": revenue_period - sw_revenue_period,
            "service_revenue_to_date": revenue_to_date - sw_revenue_to_date,
            "service_cost_period": actual_cost_period - sw_cost_period,
            "service_cost_to_date": actual_cost_to_date - sw_cost_to_date,
            "is_software": key.is_software,

            "cost_rate": cost_rate,
            "severity": hours_variance_severity(actual_to_date, variance_pct, low_to_date, high_to_date,
                                                ctx.settings, has_expectation=exp is not None),
        })
    return rows


# =============================================================================
# ROLLUPS
# =============================================================================

def _frame(rows: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(list(rows))
    for col in SUM_FIELDS:
        if col not in df.columns:
            df[col] = 0.0
    return df


def add_derived_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Variance, end-of-period variance and GM% on summed fields."""
    df = df.copy()
    exp_td = df["expected_hours_to_date"]
    exp_p = df["expected_hours_period"]
    rev_p = df["revenue_period"]

    df["variance_to_date_hours"] = df["actual_hours_to_date"] - exp_td
    df["variance_to_date_pct"] = np.where(exp_td > 0, df["variance_to_date_hours"] / exp_td.where(exp_td > 0), np.nan)
    df["variance_eom_hours"] = df["projected_hours_period"] - exp_p
    df["variance_eom_pct"] = np.where(exp_p > 0, df["variance_eom_hours"] / exp_p.where(exp_p > 0), np.nan)

    df["projected_gm_percent"] = np.where(rev_p != 0, df["projected_gm_period"] / rev_p.where(rev_p != 0), np.nan)
    df["expected_gm_percent"] = np.where(rev_p != 0, df["expected_gm_period"] / rev_p.where(rev_p != 0), np.nan)

    df["software_gm_period"] = df["software_revenue_period"] - df["software_cost_period"]
    df["software_gm_to_date"] = df["software_revenue_to_date"] - df["software_cost_to_date"]
    df["service_gm_period"] = df["service_revenue_period"] - df["service_cost_period"]
    df["service_gm_to_date"] = df["service_revenue_to_date"] - df["service_cost_to_date"]
    return df


def frame_to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Plain python records; NaN becomes None."""
    out = []
    for rec in df.to_dict(orient="records"):
        clean = {}
        for k, v in rec.items():
            if isinstance(v, (float, np.floating)) and np.isnan(v):
                clean[k] = None
            elif isinstance(v, np.generic):
                clean[k] = v.item()
            else:
                clean[k] = v
        out.append(clean)
    return out


def rollup_rows(rows: Sequence[Mapping[str, Any]], by: List[str]) -> pd.DataFrame:
    """Sum the additive fields per group and derive ratios from the sums."""
    if not rows:
        return pd.DataFrame(columns=by + SUM_FIELDS)
    df = _frame(rows)
    grouped = df.groupby(by, dropna=False, sort=True)[SUM_FIELDS].sum().reset_index()
    return add_derived_columns(grouped)


def by_client(rows: Sequence[Mapping[str, Any]], client_names: Mapping[str, str]) -> List[Dict[str, Any]]:
    if not rows:
        return []
    agg = rollup_rows(rows, ["client_id"])
    agg.insert(1, "client_name", agg["client_id"].map(lambda c: client_names.get(c, UNKNOWN_CLIENT_LABEL)))
    agg = agg.sort_values(["client_name", "client_id"], kind="mergesort")
    return frame_to_records(agg)


def by_role(rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    if not rows:
        return []
    labelled = [dict(r, role=r.get("role") or UNSPECIFIED_ROLE_LABEL) for r in rows]
    agg = rollup_rows(labelled, ["role"])
    agg = agg.sort_values("role", kind="mergesort")
    return frame_to_records(agg)


def build_summary(rows: Sequence[Mapping[str, Any]],
                  consultants: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Grand totals over every assignment row plus bench totals."""
    if rows:
        sums = _frame(rows)[SUM_FIELDS].sum()
    else:
        sums = pd.Series(0.0, index=SUM_FIELDS)
    summary = {col: float(sums[col]) for col in SUM_FIELDS}

    for field in ("bench_hours_to_date", "bench_cost_to_date", "bench_hours_period", "bench_cost_period"):
        summary[field] = float(sum(c.get(field) or 0.0 for c in consultants))

    summary["software_gm_period"] = summary["software_revenue_period"] - summary["software_cost_period"]
    summary["software_gm_to_date"] = summary["software_revenue_to_date"] - summary["software_cost_to_date"]
    summary["service_gm_period"] = summary["service_revenue_period"] - summary["service_cost_period"]
    summary["service_gm_to_date"] = summary["service_revenue_to_date"] - summary["service_cost_to_date"]
    revenue = summary["revenue_period"]
    summary["projected_gm_percent"] = summary["projected_gm_period"] / revenue if revenue else None
    summary["expected_gm_percent"] = summary["expected_gm_period"] / revenue if revenue else None
    return summary
