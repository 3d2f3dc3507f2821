"""
Export utilities for report tables and whole reports.
"""
import pandas as pd
from typing import Optional, Dict, Any, List
from datetime import datetime
from io import BytesIO

from attribution.engine.report import PerformanceReport

REPORT_SHEETS = ["assignment_rows", "by_client", "by_consultant", "by_role", "trend", "issues"]


def export_dataframe_csv(df: pd.DataFrame, filename: Optional[str] = None) -> tuple:
    """
    Export dataframe to CSV bytes.

    Returns: (csv_bytes, filename)
    """
    if filename is None:
        filename = f"export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"

    csv_bytes = df.to_csv(index=False).encode('utf-8')

    return csv_bytes, filename


def report_table(report: PerformanceReport, section: str) -> pd.DataFrame:
    """One report section as a flat DataFrame; nested columns are dropped."""
    records: List[Dict[str, Any]] = getattr(report, section)
    df = pd.DataFrame(records)
    nested = [c for c in df.columns if df[c].map(lambda v: isinstance(v, (list, dict))).any()]
    return df.drop(columns=nested)


def export_report_excel(report: PerformanceReport, filename: Optional[str] = None) -> tuple:
    """
    Export the summary and every report table to one workbook.

    Returns: (excel_bytes, filename)
    """
    if filename is None:
        filename = f"performance_report_{report.meta['start_date']}_{report.meta['end_date']}.xlsx"

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame([report.summary]).to_excel(writer, sheet_name="summary", index=False)
        for section in REPORT_SHEETS:
            df = report_table(report, section)
            if len(df) > 0:
                df.to_excel(writer, sheet_name=section, index=False)

    return buffer.getvalue(), filename


def export_report_json(report: PerformanceReport, filename: Optional[str] = None) -> tuple:
    """
    Export the full report to JSON.

    Returns: (json_bytes, filename)
    """
    if filename is None:
        filename = f"performance_report_{report.meta['start_date']}_{report.meta['end_date']}.json"

    return report.to_json().encode('utf-8'), filename


def export_issues_csv(issues: List[Dict[str, Any]], filename: Optional[str] = None) -> tuple:
    """
    Export issues with their note status flattened into columns.
    """
    rows = []
    for issue in issues:
        row = {k: v for k, v in issue.items() if k != "note"}
        note = issue.get("note") or {}
        row["note_status"] = note.get("status")
        row["note_decision"] = note.get("decision")
        row["note_snoozed_until"] = note.get("snoozed_until")
        rows.append(row)

    if filename is None:
        filename = f"issues_{datetime.now().strftime('%Y%m%d')}.csv"

    return pd.DataFrame(rows).to_csv(index=False).encode("utf-8"), filename
