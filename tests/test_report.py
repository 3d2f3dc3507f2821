"""
End-to-end tests for the report operations over the shared March dataset.
"""
import json
import time
import pandas as pd
import pytest
import sys
from datetime import date, datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import benchmark
from attribution.data.loader import FrameDataSource
from attribution.data.semantic import UNASSIGNED, UNBENCHMARKED_LABEL
from attribution.engine.context import ReportRequest
from attribution.engine.errors import (
    ReportComputationError,
    ReportTimeoutError,
    ReportValidationError,
)
from attribution.engine.report import (
    build_performance_report,
    build_weekly_issues,
    trailing_window,
    upsert_issue_note,
)
from attribution.metrics.aggregation import SUM_FIELDS
from attribution.metrics.issues import HOURS_VARIANCE, WARNING

MARCH = dict(start_date="2025-03-01", end_date="2025-03-31", as_of_date="2025-03-14")


def _report(source, today, **overrides):
    params = dict(MARCH)
    params.update(overrides)
    return build_performance_report(source, ReportRequest(**params), today=today)


def _row(report, client_id, consultant_id, role_key):
    matches = [r for r in report.assignment_rows
               if (r["client_id"], r["consultant_id"], r["role_key"]) == (client_id, consultant_id, role_key)]
    assert len(matches) == 1
    return matches[0]


class TestAssignmentRows:

    def test_expected_actual_and_revenue_join(self, source, today):
        report = _report(source, today)
        cfo = _row(report, "C1", "K1", "cfo")

        assert cfo["expected_hours_period"] == pytest.approx(42.0)
        assert cfo["expected_hours_to_date"] == pytest.approx(20.0)
        assert cfo["actual_hours_to_date"] == pytest.approx(22.5)
        assert cfo["variance_to_date_pct"] == pytest.approx(0.125)
        assert cfo["severity"] == WARNING
        assert cfo["revenue_period"] == pytest.approx(6000.0)
        assert cfo["revenue_to_date"] == pytest.approx(6000.0 * 10 / 21)
        assert cfo["projected_hours_period"] == pytest.approx(22.5 + 22.0)

    def test_hourly_revenue_follows_actual_hours(self, source, today):
        report = _report(source, today)
        row = _row(report, "C2", "K2", "controller")
        assert row["revenue_to_date"] == pytest.approx(5.0 * 90.0)
        assert row["contract_type"] == "Hourly"

    def test_unbenchmarked_unassigned_and_reserved(self, source, today):
        report = _report(source, today)
        unbenchmarked = _row(report, "C2", "K1", "__unbenchmarked__")
        assert unbenchmarked["role"] == UNBENCHMARKED_LABEL
        assert unbenchmarked["actual_hours_period"] == 4.0

        software = _row(report, "C1", UNASSIGNED, "software: qbo")
        assert software["software_cost_period"] == pytest.approx(80.0)
        assert software["actual_gm_period"] == pytest.approx(200.0 - 80.0)

        assert not any(r["client_id"] in ("TO", "IN") for r in report.assignment_rows)

    def test_submitted_hours_only_on_request(self, source, today):
        approved = _row(_report(source, today), "C1", "K2", "controller")
        with_submitted = _row(_report(source, today, include_submitted=True), "C1", "K2", "controller")
        assert with_submitted["actual_hours_to_date"] - approved["actual_hours_to_date"] == pytest.approx(5.0)

    def test_salaried_cost_rate(self, source, today):
        cfo = _row(_report(source, today), "C1", "K1", "cfo")
        assert cfo["cost_rate"] == pytest.approx(8000.0 * 12 / 2080.0)
        assert cfo["actual_cost_to_date"] == pytest.approx(22.5 * cfo["cost_rate"])


class TestRollupInvariants:
    """Every parent equals the sum of its children."""

    @pytest.mark.parametrize("field", ["actual_hours_to_date", "revenue_period", "projected_gm_period",
                                       "expected_cost_period", "software_cost_period"])
    def test_client_and_role_rollups_sum_to_summary(self, source, today, field):
        report = _report(source, today)
        total = report.summary[field]
        assert sum(r[field] for r in report.assignment_rows) == pytest.approx(total)
        assert sum(c[field] for c in report.by_client) == pytest.approx(total)
        assert sum(r[field] for r in report.by_role) == pytest.approx(total)

    def test_consultant_rollup_matches_rows(self, source, today):
        report = _report(source, today)
        for consultant in report.by_consultant:
            rows = [r for r in report.assignment_rows if r["consultant_id"] == consultant["consultant_id"]]
            for field in SUM_FIELDS:
                assert consultant[field] == pytest.approx(sum(r[field] for r in rows))

    def test_trend_totals_match_summary(self, source, today):
        report = _report(source, today)
        last = report.trend[-1]
        assert len(report.trend) == 31
        assert last["expected_hours_cumulative"] == pytest.approx(report.summary["expected_hours_period"])
        assert last["actual_hours_cumulative"] == pytest.approx(report.summary["actual_hours_period"])
        assert last["revenue_cumulative"] == pytest.approx(report.summary["revenue_period"])
        assert last["actual_cost_cumulative"] == pytest.approx(report.summary["actual_cost_period"])

    def test_role_filter_applies_everywhere(self, source, today):
        report = _report(source, today, role=" CFO ")
        assert {r["role_key"] for r in report.assignment_rows} == {"cfo"}
        assert report.trend[-1]["revenue_cumulative"] == pytest.approx(report.summary["revenue_period"])
        assert [r["role"] for r in report.by_role] == ["CFO"]

    def test_role_filter_splits_pair_hours_within_role(self, frames, today):
        frames["benchmarks"] = pd.concat(
            [frames["benchmarks"], pd.DataFrame([benchmark("C1", "K1", "Controller", 21.0)])],
            ignore_index=True,
        )
        source = FrameDataSource(frames)

        # Ann's 22.5h at Acme split 42:21 across her two roles
        assert _row(_report(source, today), "C1", "K1", "cfo")["actual_hours_to_date"] == pytest.approx(15.0)
        filtered = _report(source, today, role="CFO")
        assert _row(filtered, "C1", "K1", "cfo")["actual_hours_to_date"] == pytest.approx(22.5)


class TestClientAndConsultantFilters:

    def test_blank_and_duplicate_ids_dropped(self, source, today):
        report = _report(source, today, client_ids="C1, ,abc,C1", consultant_ids=["K1", None, "  ", "K1"])
        assert report.meta["client_ids"] == ["C1", "abc"]
        assert report.meta["consultant_ids"] == ["K1"]

    def test_only_matching_rows(self, source, today):
        report = _report(source, today, client_ids="C1, ,abc,C1", consultant_ids=["K1", None, "  ", "K1"])
        keys = {(r["client_id"], r["consultant_id"]) for r in report.assignment_rows}
        # Software on the Acme contract has no consultant and survives the filter
        assert keys == {("C1", "K1"), ("C1", UNASSIGNED)}
        assert [c["client_id"] for c in report.by_client] == ["C1"]
        assert [c["consultant_id"] for c in report.by_consultant] == ["K1"]

    @pytest.mark.parametrize("field", ["actual_hours_to_date", "expected_hours_period", "revenue_period",
                                       "actual_cost_to_date", "projected_gm_period"])
    def test_summary_is_sum_of_filtered_rows(self, source, today, field):
        report = _report(source, today, client_ids="C1, ,abc,C1", consultant_ids="K1")
        assert report.summary[field] == pytest.approx(sum(r[field] for r in report.assignment_rows))
        unfiltered = _report(source, today)
        assert report.summary["actual_hours_to_date"] < unfiltered.summary["actual_hours_to_date"]


class TestConsultantUtilisation:

    def test_time_off_internal_and_bench(self, source, today):
        report = _report(source, today)
        ann, bob = report.by_consultant

        assert ann["consultant_name"] == "Ann Lee"
        assert ann["time_off_hours_to_date"] == 8.0
        assert ann["paid_hours_to_date"] == pytest.approx(10 * 8.0 - 8.0)
        assert ann["client_logged_hours_to_date"] == pytest.approx(22.5 + 4.0)
        assert ann["bench_cost_to_date"] > 0

        assert bob["logged_hours_to_date"] == pytest.approx(10 * 1.5 + 2.0)
        assert bob["client_logged_hours_to_date"] == pytest.approx(10 * 1.5)
        assert bob["bench_cost_to_date"] == 0.0


class TestIssuesAndSerialisation:

    def test_hours_variance_issue_and_snooze(self, frames, today):
        source = FrameDataSource(frames)
        report = _report(source, today)
        issue = next(i for i in report.issues if i["issue_type"] == HOURS_VARIANCE and i["consultant_id"] == "K1")
        assert issue["issue_key"] == "hours_variance|2025-03-01|2025-03-31|C1|K1|cfo"

        upsert_issue_note(source, issue["issue_key"], issue["issue_type"], "2025-03-01", "2025-03-31",
                          status="snoozed", snoozed_until="2025-03-20")
        keys = [i["issue_key"] for i in _report(source, today).issues]
        assert issue["issue_key"] not in keys

    def test_to_json_is_deterministic(self, source, today):
        first = _report(source, today).to_json()
        second = _report(source, today).to_json()
        assert first == second
        payload = json.loads(first)
        assert set(payload) == {"meta", "settings", "summary", "assignment_rows", "by_client",
                                "by_consultant", "by_role", "trend", "issues"}
        assert payload["meta"]["as_of_date"] == "2025-03-14"

    def test_trailing_window(self):
        assert trailing_window(date(2025, 4, 15)) == (date(2025, 1, 1), date(2025, 3, 31))


class ExplodingSource:
    """Fails the test if anything reads from it."""

    def __getattr__(self, name):
        raise AssertionError(f"data source touched: {name}")


class SlowSource(FrameDataSource):

    def list_clients(self):
        time.sleep(1.0)
        return super().list_clients()


class BrokenSource(FrameDataSource):

    def list_contracts(self):
        raise KeyError("contract_type")


class TestFailureModes:

    @pytest.mark.parametrize("start,end", [("2025-03-31", "2025-03-01"), ("not-a-date", "2025-03-31"), (None, "2025-03-31")])
    def test_validation_before_any_load(self, start, end, today):
        with pytest.raises(ReportValidationError):
            build_performance_report(ExplodingSource(), ReportRequest(start_date=start, end_date=end), today=today)

    def test_as_of_clamped_into_period(self, source, today):
        report = _report(source, today, as_of_date="2025-05-01")
        assert report.meta["as_of_date"] == "2025-03-31"

    def test_timeout(self, frames, today):
        with pytest.raises(ReportTimeoutError):
            build_performance_report(SlowSource(frames), ReportRequest(**MARCH), today=today, timeout=0.05)

    def test_unexpected_failure_wrapped(self, frames, today):
        with pytest.raises(ReportComputationError):
            build_performance_report(BrokenSource(frames), ReportRequest(**MARCH), today=today)


class FlakyWeekSource(FrameDataSource):
    """Timecard queries for one look-back week fail."""

    failing_start = date(2025, 3, 3)

    def query_timecard_totals(self, start, end, statuses=("Approved",)):
        if start == self.failing_start:
            raise RuntimeError("database unavailable")
        return super().query_timecard_totals(start, end, statuses)


class TestWeeklyIssues:

    def test_repeat_counts(self, source, today):
        result = build_weekly_issues(source, "2025-03-10", "2025-03-16", today=today)
        issue = next(i for i in result["issues"]
                     if i["issue_type"] == HOURS_VARIANCE and i["consultant_id"] == "K1")
        # Over plan this week and the week before; no time at all in February
        assert issue["repeat_count"] == 4

    def test_failed_week_counts_as_no_issues(self, frames, today):
        result = build_weekly_issues(FlakyWeekSource(frames), "2025-03-10", "2025-03-16", today=today)
        issue = next(i for i in result["issues"]
                     if i["issue_type"] == HOURS_VARIANCE and i["consultant_id"] == "K1")
        assert issue["repeat_count"] == 3

    def test_lookback_capped(self, source, today):
        one = build_weekly_issues(source, "2025-03-10", "2025-03-16", lookback_weeks=1, today=today)
        assert all(i["repeat_count"] == 1 for i in one["issues"])

    def test_invalid_week(self, source):
        with pytest.raises(ReportValidationError):
            build_weekly_issues(source, "2025-03-16", "2025-03-10")


class TestIssueNotes:

    def test_upsert_keeps_first_acknowledgement(self, source):
        first = upsert_issue_note(source, "k|1", "attention", "2025-03-01", "2025-03-31",
                                  status="acknowledged", acknowledged_by="ann",
                                  now=datetime(2025, 3, 14, 9, 0))
        assert first.acknowledged_at == datetime(2025, 3, 14, 9, 0)

        second = upsert_issue_note(source, "k|1", "attention", "2025-03-01", "2025-03-31",
                                   status="open", decision="monitor")
        assert second.decision == "monitor"
        assert second.acknowledged_by == "ann"
        assert second.acknowledged_at == datetime(2025, 3, 14, 9, 0)
        assert len(source.get_issue_notes_by_keys(["k|1"])) == 1

    def test_required_fields(self, source):
        with pytest.raises(ReportValidationError):
            upsert_issue_note(source, "", "attention", "2025-03-01", "2025-03-31")
        with pytest.raises(ReportValidationError):
            upsert_issue_note(source, "k|1", "attention", None, "2025-03-31")

    def test_persisted_to_directory(self, tmp_path):
        source = FrameDataSource({}, notes_path=tmp_path / "processed" / "issue_notes.csv")
        upsert_issue_note(source, "k|2", "gm_variance", "2025-03-01", "2025-03-31",
                          status="closed", notes="repriced", now=datetime(2025, 3, 20, 12, 0))

        reloaded = FrameDataSource.from_directory(tmp_path)
        (note,) = reloaded.get_issue_notes_by_keys(["k|2"])
        assert (note.status, note.notes) == ("closed", "repriced")
        assert note.period_start == date(2025, 3, 1)
