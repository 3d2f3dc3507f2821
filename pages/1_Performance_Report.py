"""
Performance Report

Expected vs actual hours, attributed revenue, cost and gross margin per
assignment, with rollups, trend and issues.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
import sys

import streamlit as st

st.set_page_config(
    page_title="Performance Report",
    page_icon="📈",
    layout="wide",
)

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.config import config
from attribution.engine.context import ReportRequest
from attribution.engine.errors import ReportError, ReportValidationError
from attribution.engine.report import build_performance_report
from attribution.exports import export_report_excel, export_report_json, export_issues_csv
from attribution.ui.charts import hours_trend_chart, margin_trend_chart
from attribution.ui.formatting import fmt_currency, fmt_hours, fmt_ratio
from attribution.ui.layout import get_data_source, render_report_filters, render_table
from attribution.ui.state import init_state, get_state, set_state

init_state()

ROW_COLUMNS = [
    "client_name", "consultant_name", "role", "contract_type", "severity",
    "expected_hours_to_date", "actual_hours_to_date", "variance_to_date_pct",
    "expected_hours_period", "projected_hours_period",
    "revenue_period", "projected_cost_period", "projected_gm_period", "projected_gm_percent",
]
CLIENT_COLUMNS = [
    "client_name", "expected_hours_period", "actual_hours_to_date", "revenue_period",
    "expected_cost_period", "projected_gm_period", "expected_gm_percent", "projected_gm_percent",
]
CONSULTANT_COLUMNS = [
    "consultant_name", "job_title", "paid_hours_to_date", "logged_hours_to_date",
    "bench_hours_to_date", "bench_cost_to_date", "utilization_to_date",
    "actual_hours_to_date", "revenue_period",
]
ROLE_COLUMNS = ["role", "expected_hours_period", "actual_hours_to_date", "revenue_period", "projected_gm_period"]
ISSUE_COLUMNS = ["severity", "issue_type", "client_name", "consultant_name", "role"]


def main():
    st.title("📈 Performance Report")
    st.caption("*Are assignments tracking their benchmarks, and what margin do they earn?*")

    source = get_data_source()
    filters = render_report_filters(source)

    today = date.today()
    c1, c2, c3 = st.columns(3)
    with c1:
        start = st.date_input("Start date", value=today.replace(day=1))
    with c2:
        end = st.date_input("End date", value=today)
    with c3:
        as_of = st.date_input("As of", value=min(today, end))

    if st.button("Build report", type="primary"):
        request = ReportRequest(start_date=start, end_date=end, as_of_date=as_of, **filters)
        with st.spinner("Building report..."):
            try:
                set_state("report", build_performance_report(
                    source, request, today=today, timeout=config.report_timeout_seconds
                ))
            except ReportValidationError as e:
                st.error(str(e))
                return
            except ReportError as e:
                st.error(f"Report failed: {e}")
                return

    report = get_state("report")
    if report is None:
        st.info("Choose a period and build the report.")
        return

    summary = report.summary
    m1, m2, m3, m4 = st.columns(4)
    with m1:
        st.metric("Actual Hours (to date)", fmt_hours(summary["actual_hours_to_date"]),
                  delta=fmt_hours(summary["actual_hours_to_date"] - summary["expected_hours_to_date"]))
    with m2:
        st.metric("Revenue (period)", fmt_currency(summary["revenue_period"]))
    with m3:
        st.metric("Projected GM", fmt_currency(summary["projected_gm_period"]))
    with m4:
        st.metric("Projected GM %", fmt_ratio(summary.get("projected_gm_percent")))

    st.divider()

    tabs = st.tabs(["Assignments", "Clients", "Consultants", "Roles", "Trend", "Issues"])
    with tabs[0]:
        render_table(report.assignment_rows, ROW_COLUMNS, "No assignments in this period.")
    with tabs[1]:
        render_table(report.by_client, CLIENT_COLUMNS)
    with tabs[2]:
        render_table(report.by_consultant, CONSULTANT_COLUMNS)
    with tabs[3]:
        render_table(report.by_role, ROLE_COLUMNS)
    with tabs[4]:
        if report.trend:
            st.plotly_chart(hours_trend_chart(report.trend), use_container_width=True)
            st.plotly_chart(margin_trend_chart(report.trend), use_container_width=True)
    with tabs[5]:
        render_table(report.issues, ISSUE_COLUMNS, "No open issues.")

    st.divider()
    d1, d2, d3 = st.columns(3)
    with d1:
        data, filename = export_report_excel(report)
        st.download_button("Download Excel", data, file_name=filename)
    with d2:
        data, filename = export_report_json(report)
        st.download_button("Download JSON", data, file_name=filename, mime="application/json")
    with d3:
        data, filename = export_issues_csv(report.issues)
        st.download_button("Download Issues CSV", data, file_name=filename, mime="text/csv")


main()
