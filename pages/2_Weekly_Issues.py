"""
Weekly Issues

One week's issues with repeat counts from the preceding weeks, and a form
to record how each issue was handled.
"""

from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path
import sys

import streamlit as st

st.set_page_config(
    page_title="Weekly Issues",
    page_icon="🚩",
    layout="wide",
)

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.data.records import NOTE_STATUSES
from attribution.engine.errors import ReportError
from attribution.engine.report import build_weekly_issues, upsert_issue_note
from attribution.ui.formatting import severity_dot
from attribution.ui.layout import get_data_source, render_report_filters
from attribution.ui.state import init_state, get_state, set_state

init_state()


def render_note_form(source, issue):
    note = issue.get("note") or {}
    with st.form(key=f"note_{issue['issue_key']}"):
        status = st.selectbox(
            "Status", NOTE_STATUSES,
            index=NOTE_STATUSES.index(note["status"]) if note.get("status") in NOTE_STATUSES else 0,
        )
        decision = st.text_input("Decision", value=note.get("decision") or "")
        current_snooze = note.get("snoozed_until")
        snooze = st.date_input(
            "Snooze until",
            value=date.fromisoformat(current_snooze) if current_snooze else None,
        )
        notes = st.text_area("Notes", value=note.get("notes") or "")
        who = st.text_input("Acknowledged by", value=note.get("acknowledged_by") or "")
        if st.form_submit_button("Save"):
            try:
                upsert_issue_note(
                    source, issue["issue_key"], issue["issue_type"],
                    issue["period_start"], issue["period_end"],
                    severity=issue["severity"], client_id=issue.get("client_id"),
                    consultant_id=issue.get("consultant_id"), role=issue.get("role"),
                    status=status, decision=decision or None, snoozed_until=snooze,
                    notes=notes or None, acknowledged_by=who or None,
                )
            except ReportError as e:
                st.error(str(e))
                return
            st.success("Saved")


def main():
    st.title("🚩 Weekly Issues")
    st.caption("*What needs attention this week, and is it recurring?*")

    source = get_data_source()
    filters = render_report_filters(source)

    today = date.today()
    last_monday = today - timedelta(days=today.weekday() + 7)
    c1, c2 = st.columns(2)
    with c1:
        week_start = st.date_input("Week start", value=last_monday)
    with c2:
        lookback = st.slider("Look-back weeks", min_value=1, max_value=4, value=4)

    if st.button("Find issues", type="primary"):
        with st.spinner("Checking weeks..."):
            try:
                set_state("weekly_issues", build_weekly_issues(
                    source, week_start, week_start + timedelta(days=6),
                    lookback_weeks=lookback, today=today, **filters,
                ))
            except ReportError as e:
                st.error(str(e))
                return

    result = get_state("weekly_issues")
    if result is None:
        return
    issues = result["issues"]
    if not issues:
        st.success("No issues this week.")
        return

    st.markdown(f"**{len(issues)} issues** for {result['meta']['week_start']} to {result['meta']['week_end']}")
    for issue in issues:
        who = issue.get("client_name") or issue.get("consultant_name") or ""
        label = f"{issue['issue_type'].replace('_', ' ').title()}: {who} ({issue['role']})"
        if issue.get("repeat_count", 1) > 1:
            label += f" · seen {issue['repeat_count']} weeks"
        with st.expander(label):
            st.markdown(f"{severity_dot(issue['severity'])} {issue['severity']}", unsafe_allow_html=True)
            st.json({k: v for k, v in issue.items() if k not in ("note", "issue_key")})
            render_note_form(source, issue)


main()
