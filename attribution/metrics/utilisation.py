"""
Utilisation metrics pack.

Single source of truth for: paid capacity, logged hours, bench hours and
utilisation per consultant.
"""
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from attribution.data.records import Consultant, TimecardLine
from attribution.engine.context import ReportContext
from attribution.metrics.actual_hours import HoursBucket
from attribution.metrics.aggregation import SUM_FIELDS, frame_to_records, rollup_rows


ASSIGNMENT_FIELDS = ["expected_hours_to_date", "actual_hours_to_date", "expected_hours_period", "projected_hours_period"]


def _assignments_by_client(rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Per-client expected / actual hours of one consultant."""
    if not rows:
        return []
    df = pd.DataFrame(list(rows))
    agg = df.groupby(["client_id", "client_name"], sort=False)[ASSIGNMENT_FIELDS].sum().reset_index()
    agg["variance_to_date_hours"] = agg["actual_hours_to_date"] - agg["expected_hours_to_date"]
    exp_td = agg["expected_hours_to_date"]
    agg["variance_to_date_pct"] = (agg["variance_to_date_hours"] / exp_td.where(exp_td > 0))
    agg = agg.sort_values(["client_name", "client_id"], kind="mergesort")
    return frame_to_records(agg)


def compute_consultant_utilisation(ctx: ReportContext,
                                   consultants: Iterable[Consultant],
                                   timecards: Iterable[TimecardLine],
                                   time_off: Mapping[str, HoursBucket],
                                   rows: Sequence[Mapping[str, Any]],
                                   cost_rates: Mapping[str, float],
                                   time_off_client_id: Optional[str] = None,
                                   internal_client_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Utilisation = client-logged hours / paid hours, to date.

    Paid hours are business-day capacity (holidays excluded) less time off.
    Internal hours count as logged but not as client work; bench cost is
    only charged for salaried consultants.
    """
    business_period = len(ctx.calendar.business_days(ctx.start, ctx.end))
    business_to_date = len(ctx.calendar.business_days(ctx.start, ctx.as_of))

    logged: Dict[str, HoursBucket] = defaultdict(HoursBucket)
    client_logged: Dict[str, HoursBucket] = defaultdict(HoursBucket)
    for tc in timecards:
        if time_off_client_id and tc.client_id == time_off_client_id:
            continue
        to_date = ctx.is_to_date(tc.work_date)
        logged[tc.consultant_id].period += tc.total_hours
        if to_date:
            logged[tc.consultant_id].to_date += tc.total_hours
        if internal_client_id and tc.client_id == internal_client_id:
            continue
        client_logged[tc.consultant_id].period += tc.total_hours
        if to_date:
            client_logged[tc.consultant_id].to_date += tc.total_hours

    rows_by_consultant: Dict[str, List[Mapping[str, Any]]] = defaultdict(list)
    for r in rows:
        rows_by_consultant[r["consultant_id"]].append(r)
    totals = {t["consultant_id"]: t for t in frame_to_records(rollup_rows(rows, ["consultant_id"]))} if rows else {}

    out = []
    for c in consultants:
        cid = c.consultant_id
        capacity_week = c.capacity_hours_per_week or 40.0
        per_day = capacity_week / 5

        off = time_off.get(cid, HoursBucket())
        paid_period = max(0.0, business_period * per_day - off.period)
        paid_to_date = max(0.0, business_to_date * per_day - off.to_date)

        log = logged.get(cid, HoursBucket())
        client_log = client_logged.get(cid, HoursBucket())

        bench_period = max(0.0, paid_period - log.period)
        bench_to_date = max(0.0, paid_to_date - log.to_date)
        rate = cost_rates.get(cid, 0.0)
        salaried = c.pay_type == "salary"

        own_rows = rows_by_consultant.get(cid, [])
        entry = {
            "consultant_id": cid,
            "consultant_name": c.name,
            "job_title": c.job_title,
            "capacity_hours_per_week": capacity_week,
            "paid_hours_period": paid_period,
            "paid_hours_to_date": paid_to_date,
            "time_off_hours_period": off.period,
            "time_off_hours_to_date": off.to_date,
            "logged_hours_period": log.period,
            "logged_hours_to_date": log.to_date,
            "client_logged_hours_period": client_log.period,
            "client_logged_hours_to_date": client_log.to_date,
            "bench_hours_period": bench_period,
            "bench_hours_to_date": bench_to_date,
            "bench_cost_period": bench_period * rate if salaried else 0.0,
            "bench_cost_to_date": bench_to_date * rate if salaried else 0.0,
            "assignment_load_period": sum(r["expected_hours_period"] for r in own_rows),
            "assignment_load_to_date": sum(r["expected_hours_to_date"] for r in own_rows),
            "utilization_to_date": client_log.to_date / paid_to_date if paid_to_date > 0 else None,
            "assignments": _assignments_by_client(own_rows),
        }
        rolled = totals.get(cid, {})
        entry.update({f: rolled.get(f, 0.0) for f in SUM_FIELDS})
        out.append(entry)

    out.sort(key=lambda r: ((r["consultant_name"] or "").lower(), r["consultant_id"]))
    return out
