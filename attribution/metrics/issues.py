"""
Issue detection metrics pack.

Single source of truth for: issue keys, severities, and the four derived
issue types (hours_variance, utilization_variance, attention, gm_variance).
Issues are never stored; only their notes are.
"""
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from attribution.config import PerformanceSettings
from attribution.data.records import Client, IssueNote
from attribution.data.semantic import date_str, normalize_role
from attribution.engine.context import ReportContext
from attribution.modeling.benchmarks import BenchmarkIndex

HOURS_VARIANCE = "hours_variance"
UTILIZATION_VARIANCE = "utilization_variance"
ATTENTION = "attention"
GM_VARIANCE = "gm_variance"

WARNING = "warning"
CRITICAL = "critical"


def build_issue_key(issue_type: str, period_start: date, period_end: date,
                    client_id: Optional[str], consultant_id: Optional[str], role: Optional[str]) -> str:
    """Deterministic identity shared by an issue and its saved note."""
    return "|".join([
        issue_type,
        date_str(period_start),
        date_str(period_end),
        client_id or "null",
        consultant_id or "null",
        normalize_role(role or ""),
    ])


def hours_variance_severity(actual_to_date: float, variance_pct: Optional[float],
                            low_to_date: float, high_to_date: float,
                            settings: PerformanceSettings,
                            has_expectation: bool = True) -> Optional[str]:
    """
    Band breach is critical; otherwise the variance ratio decides.

    A band edge of zero means the benchmark carries no band on that side.
    """
    severity = None
    if has_expectation:
        below = low_to_date > 0 and actual_to_date < low_to_date
        above = high_to_date > 0 and actual_to_date > high_to_date
        if below or above:
            severity = CRITICAL
    if variance_pct is not None:
        magnitude = abs(variance_pct)
        if magnitude >= settings.hours_variance_critical_pct:
            severity = CRITICAL
        elif severity is None and magnitude >= settings.hours_variance_warn_pct:
            severity = WARNING
    return severity


def _base_issue(ctx: ReportContext, issue_type: str, severity: str,
                client_id: Optional[str], client_name: Optional[str],
                consultant_id: Optional[str], consultant_name: Optional[str],
                role: str, key_role: Optional[str] = None) -> Dict[str, Any]:
    return {
        "issue_key": build_issue_key(issue_type, ctx.start, ctx.end, client_id, consultant_id, key_role or role),
        "issue_type": issue_type,
        "severity": severity,
        "period_start": date_str(ctx.start),
        "period_end": date_str(ctx.end),
        "client_id": client_id,
        "client_name": client_name,
        "consultant_id": consultant_id,
        "consultant_name": consultant_name,
        "role": role,
    }


def hours_variance_issues(ctx: ReportContext, rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    issues = []
    for row in rows:
        if not row.get("severity"):
            continue
        issue = _base_issue(ctx, HOURS_VARIANCE, row["severity"], row["client_id"], row["client_name"],
                            row["consultant_id"], row["consultant_name"], row["role"])
        issue.update({
            "expected_hours_to_date": row["expected_hours_to_date"],
            "actual_hours_to_date": row["actual_hours_to_date"],
            "variance_to_date_hours": row["variance_to_date_hours"],
            "variance_to_date_pct": row["variance_to_date_pct"],
        })
        issues.append(issue)
    return issues


def utilization_issues(ctx: ReportContext, by_consultant: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    warn = ctx.settings.hours_variance_warn_pct
    crit = ctx.settings.hours_variance_critical_pct
    issues = []
    for r in by_consultant:
        utilisation = r.get("utilization_to_date")
        if utilisation is None:
            continue
        if utilisation >= 1 - warn:
            continue
        severity = CRITICAL if utilisation <= 1 - crit else WARNING
        issue = _base_issue(ctx, UTILIZATION_VARIANCE, severity, None, None,
                            r["consultant_id"], r["consultant_name"], "Utilization", key_role="utilization")
        issue.update({
            "actual_utilization_to_date": utilisation,
            "bench_hours_to_date": r["bench_hours_to_date"],
        })
        issues.append(issue)
    return issues


def attention_issues(ctx: ReportContext, clients: Iterable[Client], index: BenchmarkIndex,
                     last_logged: Mapping[str, date],
                     reserved_client_ids: Iterable[Optional[str]] = ()) -> List[Dict[str, Any]]:
    """Active, benchmarked clients with no time logged inside the attention window."""
    window = ctx.settings.attention_risk_days
    reserved = {c for c in reserved_client_ids if c}
    issues = []
    for client in clients:
        if client.client_id in reserved or not client.is_active:
            continue
        if not index.has_client(client.client_id, ctx.as_of):
            continue

        last = last_logged.get(client.client_id)
        days_since = (ctx.as_of - last).days if last is not None else None
        if days_since is not None and days_since <= window:
            continue

        severity = CRITICAL if days_since is None or days_since > window * 2 else WARNING
        issue = _base_issue(ctx, ATTENTION, severity, client.client_id, client.name,
                            None, None, "Attention Risk", key_role="attention")
        issue.update({
            "days_since_last_logged": days_since if days_since is not None else "never",
            "last_logged_date": date_str(last),
            "attention_risk_days": window,
        })
        issues.append(issue)
    return issues


def gm_variance_issues(ctx: ReportContext, by_client: Iterable[Mapping[str, Any]],
                       trailing: Mapping[str, Tuple[float, float]]) -> List[Dict[str, Any]]:
    """
    Compare trailing three-month actual GM% with the period's expected GM%.

    trailing maps client id to (revenue, cost) over the trailing window.
    """
    threshold = ctx.settings.gm_variance_threshold_pct
    floor = ctx.settings.gm_materiality_floor
    issues = []
    if threshold <= 0:
        return issues

    for c in by_client:
        expected_pct = c.get("expected_gm_percent")
        if expected_pct is None:
            continue
        revenue, cost = trailing.get(c["client_id"], (0.0, 0.0))
        if revenue <= floor:
            continue

        trailing_gm = revenue - cost
        trailing_pct = trailing_gm / revenue if revenue > 0 else 0.0
        deviation = trailing_pct - expected_pct
        if abs(deviation) <= threshold:
            continue

        severity = CRITICAL if abs(deviation) > threshold * 2 else WARNING
        issue = _base_issue(ctx, GM_VARIANCE, severity, c["client_id"], c["client_name"],
                            None, None, "Trailing GM", key_role="trailing_gm")
        issue.update({
            "trailing_gm_pct": trailing_pct,
            "expected_gm_pct": expected_pct,
            "trailing_gm_variance_pct": deviation,
            "trailing_revenue": revenue,
            "trailing_gm": trailing_gm,
        })
        issues.append(issue)
    return issues


def attach_notes(issues: List[Dict[str, Any]], notes: Iterable[IssueNote]) -> List[Dict[str, Any]]:
    by_key = {n.issue_key: n for n in notes}
    for issue in issues:
        note = by_key.get(issue["issue_key"])
        issue["note"] = note.as_dict() if note is not None else None
    return issues


def is_snoozed(issue: Mapping[str, Any], today: date) -> bool:
    """Snoozed until the snooze date has passed."""
    note = issue.get("note")
    if not note or not note.get("snoozed_until"):
        return False
    return date.fromisoformat(note["snoozed_until"]) >= today


def visible_issues(issues: Iterable[Dict[str, Any]], today: date) -> List[Dict[str, Any]]:
    return [i for i in issues if not is_snoozed(i, today)]
