"""
Tests for report exports.
"""
import json
import pandas as pd
import sys
from io import BytesIO
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.engine.context import ReportRequest
from attribution.engine.report import build_performance_report
from attribution.exports import (
    export_dataframe_csv,
    export_issues_csv,
    export_report_excel,
    export_report_json,
    report_table,
)
from attribution.ui.formatting import fmt_currency, fmt_ratio, fmt_variance


def _report(source, today):
    request = ReportRequest(start_date="2025-03-01", end_date="2025-03-31", as_of_date="2025-03-14")
    return build_performance_report(source, request, today=today)


class TestReportExports:

    def test_json_bytes_round_trip(self, source, today):
        report = _report(source, today)
        data, filename = export_report_json(report)
        assert filename == "performance_report_2025-03-01_2025-03-31.json"
        assert json.loads(data.decode("utf-8"))["summary"]["revenue_period"] == report.summary["revenue_period"]

    def test_excel_has_summary_and_tables(self, source, today):
        data, filename = export_report_excel(_report(source, today))
        assert filename.endswith(".xlsx")
        sheets = pd.read_excel(BytesIO(data), sheet_name=None)
        assert {"summary", "assignment_rows", "by_client", "by_consultant", "trend"} <= set(sheets)

    def test_nested_columns_dropped_from_tables(self, source, today):
        df = report_table(_report(source, today), "by_consultant")
        assert "assignments" not in df.columns
        assert "utilization_to_date" in df.columns

    def test_issue_notes_flattened(self):
        issues = [{"issue_key": "k1", "severity": "warning", "note": {"status": "snoozed", "decision": None,
                                                                      "snoozed_until": "2025-03-20"}},
                  {"issue_key": "k2", "severity": "critical", "note": None}]
        data, _ = export_issues_csv(issues, "issues.csv")
        df = pd.read_csv(BytesIO(data))
        assert list(df["note_status"].fillna("")) == ["snoozed", ""]
        assert "note" not in df.columns

    def test_dataframe_csv(self):
        data, filename = export_dataframe_csv(pd.DataFrame({"a": [1, 2]}), "x.csv")
        assert (data, filename) == (b"a\n1\n2\n", "x.csv")


class TestFormatting:

    def test_missing_values_render_as_dash(self):
        assert fmt_currency(None) == "—"
        assert fmt_ratio(float("nan")) == "—"

    def test_values(self):
        assert fmt_currency(1234.4) == "$1,234"
        assert fmt_ratio(0.125) == "12.5%"
        assert fmt_variance(-0.05, is_ratio=True) == "-5.0%"
