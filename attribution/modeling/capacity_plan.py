"""
Capacity planning model.

Projects next month's utilisation per consultant from the benchmarks in force
and lists contracts coming to an end.
"""
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from attribution.data.records import Client, Consultant, Contract
from attribution.data.semantic import UNKNOWN_CLIENT_LABEL, date_str, normalize_id
from attribution.metrics.calendar import MonthCalendar, next_month_bounds
from attribution.modeling.benchmarks import BenchmarkIndex

COMMON_ROLES = ["CFO", "Controller", "Senior Accountant", "Staff Accountant"]


def add_months(d: date, months: int) -> date:
    return (pd.Timestamp(d) + pd.DateOffset(months=months)).date()


def _contract_by_assignment(contracts: Iterable[Contract], month_start: date,
                            month_end: date) -> Dict[tuple, Contract]:
    """First live contract per (client, assigned consultant) overlapping the month."""
    lookup: Dict[tuple, Contract] = {}
    for ct in contracts:
        if ct.end_reason or ct.start_date is None or ct.start_date > month_end:
            continue
        if ct.end_date is not None and ct.end_date < month_start:
            continue
        for _, ref, _ in ct.assigned_roles:
            consultant_id = normalize_id(ref)
            if consultant_id:
                lookup.setdefault((ct.client_id, consultant_id), ct)
    return lookup


def plan_capacity(as_of: date,
                  consultants: Sequence[Consultant],
                  contracts: Sequence[Contract],
                  index: BenchmarkIndex,
                  clients: Sequence[Client],
                  holidays: Iterable[date] = ()) -> Dict[str, Any]:
    """
    Capacity = business days x weekly capacity / 5; projected hours are the
    monthly targets of each key's version in force by the month end, with no
    sub-month weighting.
    """
    month_start, month_end = next_month_bounds(as_of)
    business_days = len(MonthCalendar(True, holidays).business_days(month_start, month_end))
    client_names = {c.client_id: c.name for c in clients}
    contract_lookup = _contract_by_assignment(contracts, month_start, month_end)

    planning = []
    ending: List[Dict[str, Any]] = []
    seen_ending = set()

    for consultant in consultants:
        cid = consultant.consultant_id
        capacity = business_days * (consultant.capacity_hours_per_week or 40.0) / 5

        projected = 0.0
        assignments = []
        for key in index.keys():
            if key.consultant_id != cid:
                continue
            version = index.version_for(key, month_end)
            if version is None:
                continue

            client_name = client_names.get(key.client_id, UNKNOWN_CLIENT_LABEL)
            contract = contract_lookup.get((key.client_id, cid))
            contract_ending = None
            if contract is not None and contract.end_date is not None \
                    and month_start <= contract.end_date <= month_end:
                contract_ending = date_str(contract.end_date)
                dedupe_key = (contract.contract_id, cid)
                if dedupe_key not in seen_ending:
                    seen_ending.add(dedupe_key)
                    ending.append({
                        "contract_id": contract.contract_id,
                        "client_id": key.client_id,
                        "client_name": client_name,
                        "consultant_id": cid,
                        "consultant_name": consultant.name,
                        "contract_end_date": contract_ending,
                        "contract_type": contract.contract_type,
                    })

            hours = version.target if business_days > 0 else 0.0
            projected += hours
            assignments.append({
                "client_id": key.client_id,
                "client_name": client_name,
                "role": version.role or "(Unspecified Role)",
                "projected_hours": hours,
                "contract_ending": contract_ending,
            })

        planning.append({
            "consultant_id": cid,
            "consultant_name": consultant.name,
            "capacity_hours": capacity,
            "projected_hours": projected,
            "utilization": projected / capacity if capacity > 0 else 0.0,
            "available_capacity": max(0.0, capacity - projected),
            "assignments": assignments,
        })

    planning.sort(key=lambda r: ((r["consultant_name"] or "").lower(), r["consultant_id"]))
    ending.sort(key=lambda r: (r["contract_end_date"], r["contract_id"], r["consultant_id"]))

    return {
        "meta": {
            "next_month_start": date_str(month_start),
            "next_month_end": date_str(month_end),
            "as_of_date": date_str(as_of),
            "business_days": business_days,
        },
        "capacity_planning": planning,
        "contracts_ending_next_month": ending,
    }


def contracts_ending(as_of: date, contracts: Sequence[Contract], clients: Sequence[Client],
                     days_ahead: int = 60, client_ids: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
    """
    Live contracts whose effective end (end date, else start + length in
    months) falls on or before as_of + days_ahead.
    """
    horizon = (pd.Timestamp(as_of) + pd.Timedelta(days=int(days_ahead))).date()
    wanted = set(client_ids or [])
    by_id = {c.client_id: c for c in clients}

    out = []
    for ct in contracts:
        if ct.end_reason:
            continue
        if wanted and ct.client_id not in wanted:
            continue

        initial_term_end = None
        if ct.contract_length_months is not None and ct.start_date is not None:
            initial_term_end = add_months(ct.start_date, ct.contract_length_months)
        effective_end = ct.end_date or initial_term_end
        if effective_end is None or effective_end > horizon:
            continue

        client = by_id.get(ct.client_id)
        out.append({
            "contract_id": ct.contract_id,
            "client_id": ct.client_id,
            "client_name": client.name if client else None,
            "client_active": client.is_active if client else None,
            "contract_name": ct.contract_name,
            "contract_type": ct.contract_type or None,
            "contract_start_date": date_str(ct.start_date),
            "contract_end_date": date_str(ct.end_date),
            "contract_length_months": ct.contract_length_months,
            "initial_term_end_date": date_str(initial_term_end),
            "effective_end_date": date_str(effective_end),
            "monthly_revenue": ct.monthly_fee or None,
            "is_month_to_month": ct.end_date is None and initial_term_end is not None and as_of > initial_term_end,
            "days_until_end": (effective_end - as_of).days,
        })

    out.sort(key=lambda r: (r["effective_end_date"], r["contract_id"]))
    return out


def distinct_roles(index: BenchmarkIndex) -> List[str]:
    """Benchmark roles plus the common staffing roles."""
    roles = index.roles()
    known = {r.lower() for r in roles}
    for role in COMMON_ROLES:
        if role.lower() not in known:
            roles.append(role)
    return sorted(roles, key=str.lower)
