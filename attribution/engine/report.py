"""
Report operations.

Every operation loads the reference data once, builds a ReportContext and
runs the metric packs over in-memory structures. Nothing is shared between
calls, so concurrent computations need no locking.
"""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd

from attribution.config import PerformanceSettings, config
from attribution.data.records import (
    BenchmarkVersion,
    Client,
    Consultant,
    Contract,
    IssueNote,
    TimecardLine,
)
from attribution.data.semantic import AssignmentKey, date_str, normalize_role
from attribution.engine.context import (
    ReportContext,
    ReportRequest,
    normalize_id_list,
    parse_date_input,
)
from attribution.engine.errors import (
    ReportComputationError,
    ReportError,
    ReportTimeoutError,
    ReportValidationError,
)
from attribution.metrics.actual_hours import ActualHours, ActualHoursAllocator, HoursBucket
from attribution.metrics.aggregation import build_assignment_rows, build_summary, by_client, by_role
from attribution.metrics.cost import cost_rates
from attribution.metrics.expected_hours import ExpectedHours, ExpectedHoursAccumulator
from attribution.metrics.issues import (
    HOURS_VARIANCE,
    attach_notes,
    attention_issues,
    gm_variance_issues,
    hours_variance_issues,
    utilization_issues,
    visible_issues,
)
from attribution.metrics.revenue_attribution import Ledger, RevenueAttributor
from attribution.metrics.trend import build_trend
from attribution.metrics.utilisation import compute_consultant_utilisation
from attribution.modeling.benchmarks import BenchmarkIndex
from attribution.modeling.capacity_plan import contracts_ending, distinct_roles, plan_capacity

logger = logging.getLogger(__name__)

ACKNOWLEDGING_STATUSES = ("acknowledged", "closed")


# =============================================================================
# TIMEOUTS
# =============================================================================

def run_with_timeout(fn: Callable[..., Any], timeout: Optional[float], *args, **kwargs) -> Any:
    """
    Run fn within timeout seconds.

    Raises ReportTimeoutError when the budget is exceeded. The worker thread
    is abandoned, not interrupted; its result is discarded.
    """
    if not timeout or timeout <= 0:
        return fn(*args, **kwargs)

    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout as exc:
        future.cancel()
        raise ReportTimeoutError(f"Computation exceeded {timeout:g}s") from exc
    finally:
        executor.shutdown(wait=False)


def _guarded(fn: Callable[..., Any], *args, **kwargs) -> Any:
    """Report errors pass through; anything else becomes ReportComputationError."""
    try:
        return fn(*args, **kwargs)
    except ReportError:
        raise
    except Exception as exc:
        logger.exception("Report computation failed")
        raise ReportComputationError(str(exc) or exc.__class__.__name__) from exc


# =============================================================================
# REFERENCE DATA
# =============================================================================

@dataclass
class ReferenceData:
    """Everything a report reads up front, filtered to the request."""

    clients: List[Client]
    consultants: List[Consultant]
    contracts: List[Contract]
    versions: List[BenchmarkVersion]
    holidays: List[date]
    all_consultant_ids: Set[str]
    time_off_client_id: Optional[str] = None
    internal_client_id: Optional[str] = None
    consultant_filter: Optional[Set[str]] = None

    @property
    def client_names(self) -> Dict[str, str]:
        return {c.client_id: c.name for c in self.clients}

    @property
    def consultant_names(self) -> Dict[str, str]:
        return {c.consultant_id: c.name for c in self.consultants}

    @property
    def client_active(self) -> Dict[str, bool]:
        return {c.client_id: c.is_active for c in self.clients}

    @property
    def reserved_client_ids(self) -> Tuple[Optional[str], Optional[str]]:
        return self.time_off_client_id, self.internal_client_id


def _reserved_client_id(clients: Sequence[Client], name: str) -> Optional[str]:
    wanted = normalize_role(name)
    for c in clients:
        if normalize_role(c.name) == wanted:
            return c.client_id
    return None


def load_reference_data(source, client_ids: Sequence[str] = (),
                        consultant_ids: Sequence[str] = ()) -> ReferenceData:
    all_clients = source.list_clients()
    all_consultants = source.list_consultants()

    clients = [c for c in all_clients if not client_ids or c.client_id in client_ids]
    active = [c for c in all_consultants if c.is_active]
    consultants = [c for c in active if not consultant_ids or c.consultant_id in consultant_ids]

    client_set = {c.client_id for c in clients}
    consultant_set = {c.consultant_id for c in consultants}

    contracts = [ct for ct in source.list_contracts() if ct.client_id in client_set]
    versions = [
        v for v in source.list_benchmark_versions()
        if v.client_id in client_set and v.consultant_id in consultant_set
    ]

    # Reserved clients are recognised even when the client filter excludes them
    return ReferenceData(
        clients=clients,
        consultants=consultants,
        contracts=contracts,
        versions=versions,
        holidays=[h.holiday_date for h in source.list_holidays()],
        all_consultant_ids={c.consultant_id for c in all_consultants},
        time_off_client_id=_reserved_client_id(all_clients, config.time_off_client_name),
        internal_client_id=_reserved_client_id(all_clients, config.internal_client_name),
        consultant_filter=set(consultant_ids) if consultant_ids else None,
    )


# =============================================================================
# CORE PIPELINE
# =============================================================================

@dataclass
class CoreResult:
    ctx: ReportContext
    index: BenchmarkIndex
    timecards: List[TimecardLine]
    expected: Dict[AssignmentKey, ExpectedHours]
    actual: Dict[AssignmentKey, ActualHours]
    time_off: Dict[str, HoursBucket]
    revenue: Dict[AssignmentKey, Ledger]
    software_revenue: Dict[AssignmentKey, Ledger]
    software_cost: Dict[AssignmentKey, Ledger]
    cost_rates: Dict[str, float]
    rows: List[Dict[str, Any]]


def _compute_core(source, ref: ReferenceData, ctx: ReportContext,
                  statuses: Sequence[str]) -> CoreResult:
    """Expected hours, actual hours, revenue and assignment rows for one window."""
    index = BenchmarkIndex(ref.versions)
    client_set = {c.client_id for c in ref.clients}
    consultant_set = {c.consultant_id for c in ref.consultants}
    reserved = {c for c in ref.reserved_client_ids if c}

    timecards = [
        tc for tc in source.query_timecard_totals(ctx.start, ctx.end, statuses)
        if tc.consultant_id in consultant_set and (tc.client_id in client_set or tc.client_id in reserved)
    ]

    accumulator = ExpectedHoursAccumulator(ctx, index)
    expected = accumulator.accumulate()

    # Under a role filter a pair's hours are split across that role's keys only
    allocator = ActualHoursAllocator(ctx, index, accumulator.keys_by_pair(),
                                     ref.time_off_client_id, ref.internal_client_id)
    actual = allocator.allocate(timecards)

    attributor = RevenueAttributor(ctx, ref.all_consultant_ids, ref.consultant_filter)
    revenue = attributor.attribute(ref.contracts)
    attributor.apply_hourly(actual)

    rates = cost_rates(ref.consultants)
    rows = build_assignment_rows(
        ctx, expected, actual, revenue, attributor.software_revenue, attributor.software_cost,
        rates, ref.client_names, ref.consultant_names, excluded_clients=reserved,
    )

    return CoreResult(
        ctx=ctx,
        index=index,
        timecards=timecards,
        expected=expected,
        actual=actual,
        time_off=dict(allocator.time_off),
        revenue=revenue,
        software_revenue=attributor.software_revenue,
        software_cost=attributor.software_cost,
        cost_rates=rates,
        rows=rows,
    )


def trailing_window(start: date) -> Tuple[date, date]:
    """The three calendar months before the month of start."""
    month_start = pd.Timestamp(start).to_period("M").start_time
    first = (month_start - pd.DateOffset(months=3)).date()
    last = (month_start - pd.Timedelta(days=1)).date()
    return first, last


def _trailing_gm(source, ref: ReferenceData, ctx: ReportContext, statuses: Sequence[str],
                 client_ids: Sequence[str]) -> Dict[str, Tuple[float, float]]:
    """Trailing revenue and actual cost per client, computed like the report itself."""
    if not client_ids:
        return {}
    t_start, t_end = trailing_window(ctx.start)
    t_ctx = ReportContext.build(
        start=t_start, end=t_end, as_of=t_end, today=ctx.today, settings=ctx.settings,
        holidays=ctx.calendar.holidays, business_days_only=ctx.calendar.business_days_only,
        client_active=ctx.client_active,
    )
    core = _compute_core(source, ref, t_ctx, statuses)

    wanted = set(client_ids)
    totals: Dict[str, Tuple[float, float]] = {}
    for row in core.rows:
        if row["client_id"] not in wanted:
            continue
        revenue, cost = totals.get(row["client_id"], (0.0, 0.0))
        totals[row["client_id"]] = (revenue + row["revenue_period"], cost + row["actual_cost_period"])
    return totals


# =============================================================================
# PERFORMANCE REPORT
# =============================================================================

@dataclass
class PerformanceReport:
    meta: Dict[str, Any]
    settings: Dict[str, Any]
    summary: Dict[str, Any]
    assignment_rows: List[Dict[str, Any]] = field(default_factory=list)
    by_client: List[Dict[str, Any]] = field(default_factory=list)
    by_consultant: List[Dict[str, Any]] = field(default_factory=list)
    by_role: List[Dict[str, Any]] = field(default_factory=list)
    trend: List[Dict[str, Any]] = field(default_factory=list)
    issues: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": self.meta,
            "settings": self.settings,
            "summary": self.summary,
            "assignment_rows": self.assignment_rows,
            "by_client": self.by_client,
            "by_consultant": self.by_consultant,
            "by_role": self.by_role,
            "trend": self.trend,
            "issues": self.issues,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Deterministic serialisation; identical inputs give identical bytes."""
        return json.dumps(self.to_dict(), indent=indent, default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _compute_report(source, request: ReportRequest, settings: PerformanceSettings,
                    today: date, dates: Tuple[date, date, date]) -> PerformanceReport:
    start, end, as_of = dates
    client_ids = normalize_id_list(request.client_ids)
    consultant_ids = normalize_id_list(request.consultant_ids)

    ref = load_reference_data(source, client_ids, consultant_ids)
    ctx = ReportContext.build(
        start=start, end=end, as_of=as_of, today=today, settings=settings,
        holidays=ref.holidays, business_days_only=request.business_days_only,
        role_filter=request.role_filter, client_active=ref.client_active,
    )
    statuses = request.statuses
    logger.info("Building performance report %s..%s as of %s (%d clients, %d consultants)",
                start, end, as_of, len(ref.clients), len(ref.consultants))

    core = _compute_core(source, ref, ctx, statuses)
    rows = core.rows

    consultants = compute_consultant_utilisation(
        ctx, ref.consultants, core.timecards, core.time_off, rows, core.cost_rates,
        ref.time_off_client_id, ref.internal_client_id,
    )
    clients_rollup = by_client(rows, ref.client_names)
    roles_rollup = by_role(rows)
    summary = build_summary(rows, consultants)

    row_keys = {AssignmentKey(r["client_id"], r["consultant_id"], r["role_key"]) for r in rows}
    trend = build_trend(ctx, row_keys, core.expected, core.actual, core.revenue,
                        core.software_revenue, core.software_cost, core.cost_rates)

    issues = hours_variance_issues(ctx, rows)
    issues += utilization_issues(ctx, consultants)
    last_logged = source.query_last_logged_dates(as_of)
    issues += attention_issues(ctx, ref.clients, core.index, last_logged, ref.reserved_client_ids)

    gm_candidates = [c["client_id"] for c in clients_rollup if c.get("expected_gm_percent") is not None]
    if gm_candidates and settings.gm_variance_threshold_pct > 0:
        trailing = _trailing_gm(source, ref, ctx, statuses, gm_candidates)
        issues += gm_variance_issues(ctx, clients_rollup, trailing)

    attach_notes(issues, source.get_issue_notes_by_keys([i["issue_key"] for i in issues]))
    issues = visible_issues(issues, today)

    return PerformanceReport(
        meta={
            "start_date": date_str(start),
            "end_date": date_str(end),
            "as_of_date": date_str(as_of),
            "include_submitted": request.include_submitted,
            "business_days_only": request.business_days_only,
            "role": request.role_filter,
            "client_ids": list(client_ids),
            "consultant_ids": list(consultant_ids),
            "holidays": sorted(date_str(h) for h in ref.holidays if start <= h <= end),
        },
        settings=settings.as_dict(),
        summary=summary,
        assignment_rows=rows,
        by_client=clients_rollup,
        by_consultant=consultants,
        by_role=roles_rollup,
        trend=trend,
        issues=issues,
    )


def build_performance_report(source, request: ReportRequest,
                             settings: Optional[PerformanceSettings] = None,
                             today: Optional[date] = None,
                             timeout: Optional[float] = None) -> PerformanceReport:
    """
    Reconcile expected hours, actual hours, revenue and cost per assignment
    over the request's period.

    Raises ReportValidationError before any data is read when the dates are
    unusable, ReportTimeoutError when timeout is exceeded, and
    ReportComputationError for anything unexpected.
    """
    dates = request.resolve_dates()
    settings = (settings or PerformanceSettings()).validate()
    today = today or date.today()
    return run_with_timeout(_guarded, timeout, _compute_report, source, request, settings, today, dates)


# =============================================================================
# WEEKLY ISSUES
# =============================================================================

def _repeat_key(issue: Dict[str, Any]) -> str:
    return "|".join([
        issue["issue_type"],
        issue.get("client_id") or "null",
        issue.get("consultant_id") or "null",
        normalize_role(issue.get("role")),
    ])


def build_weekly_issues(source, week_start: Any, week_end: Any,
                        client_ids: Sequence[Any] = (), consultant_ids: Sequence[Any] = (),
                        role: Optional[str] = None, include_submitted: bool = False,
                        business_days_only: bool = True, lookback_weeks: int = 4,
                        settings: Optional[PerformanceSettings] = None,
                        today: Optional[date] = None) -> Dict[str, Any]:
    """
    Issues for one week, with how many of the prior weeks raised the same
    hours variance. Prior weeks run in parallel; a failing week counts as
    a week without issues.
    """
    start = parse_date_input(week_start)
    end = parse_date_input(week_end)
    if start is None or end is None:
        raise ReportValidationError("Invalid week_start or week_end (expected YYYY-MM-DD)")
    if end < start:
        raise ReportValidationError("week_end must be on or after week_start")

    settings = (settings or PerformanceSettings()).validate()
    today = today or date.today()

    def week_request(ws: date, we: date) -> ReportRequest:
        return ReportRequest(
            start_date=ws, end_date=we, as_of_date=we,
            client_ids=normalize_id_list(client_ids), consultant_ids=normalize_id_list(consultant_ids), role=role,
            include_submitted=include_submitted, business_days_only=business_days_only,
        )

    report = build_performance_report(source, week_request(start, end), settings, today,
                                      timeout=config.report_timeout_seconds)

    repeats: Dict[str, int] = {}
    for issue in report.issues:
        if issue["issue_type"] == HOURS_VARIANCE:
            repeats[_repeat_key(issue)] = 1

    max_lookback = min(int(lookback_weeks), config.weekly_issues_max_lookback)
    prior_weeks = []
    for w in range(1, max_lookback):
        ws = start - timedelta(days=7 * w)
        prior_weeks.append((w, ws, ws + timedelta(days=6)))

    def prior_week_issues(week: int, ws: date, we: date) -> List[Dict[str, Any]]:
        try:
            r = build_performance_report(source, week_request(ws, we), settings, today)
        except Exception as exc:
            logger.warning("Weekly issues: look-back week %d (%s..%s) failed: %s", week, ws, we, exc)
            return []
        return [i for i in r.issues if i["issue_type"] == HOURS_VARIANCE]

    if prior_weeks:
        with ThreadPoolExecutor(max_workers=len(prior_weeks)) as executor:
            futures = [executor.submit(prior_week_issues, *pw) for pw in prior_weeks]
            results = [f.result() for f in futures]
        for issues in results:
            for issue in issues:
                key = _repeat_key(issue)
                if key in repeats:
                    repeats[key] += 1

    return {
        "meta": {
            "week_start": date_str(start),
            "week_end": date_str(end),
            "include_submitted": include_submitted,
            "business_days_only": business_days_only,
            "lookback_weeks": lookback_weeks,
        },
        "issues": [dict(i, repeat_count=repeats.get(_repeat_key(i), 1)) for i in report.issues],
    }


# =============================================================================
# CAPACITY, CONTRACTS, ROLES
# =============================================================================

def _capacity_plan(source, as_of: date) -> Dict[str, Any]:
    consultants = [c for c in source.list_consultants() if c.is_active]
    index = BenchmarkIndex(source.list_benchmark_versions())
    holidays = [h.holiday_date for h in source.list_holidays()]
    return plan_capacity(as_of, consultants, source.list_contracts(), index, source.list_clients(), holidays)


def build_capacity_plan(source, as_of: Any, timeout: Optional[float] = None) -> Dict[str, Any]:
    """Next calendar month's projected utilisation; raises ReportTimeoutError past the budget."""
    as_of_date = parse_date_input(as_of)
    if as_of_date is None:
        raise ReportValidationError("Invalid as_of_date (expected YYYY-MM-DD)")
    budget = config.capacity_timeout_seconds if timeout is None else timeout
    return run_with_timeout(_guarded, budget, _capacity_plan, source, as_of_date)


def list_contracts_ending(source, as_of: Any = None, days_ahead: int = 60,
                          client_ids: Sequence[Any] = (), today: Optional[date] = None) -> List[Dict[str, Any]]:
    as_of_date = parse_date_input(as_of) or today or date.today()
    return contracts_ending(as_of_date, source.list_contracts(), source.list_clients(),
                            days_ahead=days_ahead, client_ids=normalize_id_list(client_ids))


def list_report_roles(source) -> List[str]:
    return distinct_roles(BenchmarkIndex(source.list_benchmark_versions()))


# =============================================================================
# ISSUE NOTES
# =============================================================================

def upsert_issue_note(source, issue_key: str, issue_type: str, period_start: Any, period_end: Any,
                      severity: Optional[str] = None, client_id: Optional[str] = None,
                      consultant_id: Optional[str] = None, role: Optional[str] = None,
                      status: Optional[str] = None, decision: Optional[str] = None,
                      snoozed_until: Any = None, notes: Optional[str] = None,
                      acknowledged_by: Optional[str] = None,
                      now: Optional[datetime] = None) -> IssueNote:
    """Save the disposition of an issue under its key; repeated saves replace it."""
    start = parse_date_input(period_start)
    end = parse_date_input(period_end)
    if not issue_key or not issue_type or start is None or end is None:
        raise ReportValidationError("issue_key, issue_type, period_start and period_end are required")

    status = (status or "open").strip().lower()
    acknowledged_at = None
    if status in ACKNOWLEDGING_STATUSES:
        acknowledged_at = now or datetime.now()

    note = IssueNote(
        issue_key=issue_key,
        issue_type=issue_type,
        severity=severity,
        period_start=start,
        period_end=end,
        client_id=client_id or None,
        consultant_id=consultant_id or None,
        role=role,
        status=status,
        decision=decision,
        snoozed_until=parse_date_input(snoozed_until),
        notes=notes,
        acknowledged_by=acknowledged_by,
        acknowledged_at=acknowledged_at,
    )
    return source.upsert_issue_note(note)
