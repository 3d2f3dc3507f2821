"""
Data loading utilities and the read-only data interface consumed by the engine.
"""
from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from attribution.config import config, TABLE_FILES
from attribution.data.records import (
    BenchmarkVersion,
    Client,
    Consultant,
    Contract,
    Holiday,
    IssueNote,
    TimecardLine,
    benchmarks_from_frame,
    clients_from_frame,
    consultants_from_frame,
    contracts_from_frame,
    holidays_from_frame,
    issue_note_to_row,
    issue_notes_from_frame,
    timecards_from_frame,
)
from attribution.data.schema import ensure_column_types, normalise_column_names, validate_schema
from attribution.data.semantic import normalize_id

logger = logging.getLogger(__name__)

APPROVED_STATUSES = ("Approved",)
APPROVED_OR_SUBMITTED = ("Approved", "Submitted")

HOUR_BUCKETS = ["client_facing_hours", "non_client_facing_hours", "other_task_hours"]


def _normalise_column_selection(columns: Optional[Sequence[str]]) -> Optional[list[str]]:
    """Deduplicate and normalise a requested column list."""
    if not columns:
        return None
    return list(dict.fromkeys(str(col) for col in columns))


def _load_file(filepath: Path, columns: Optional[Sequence[str]] = None) -> Optional[pd.DataFrame]:
    """Load a single file (parquet or csv), optionally selecting columns."""
    selected_cols = _normalise_column_selection(columns)
    parquet_path = filepath.with_suffix(".parquet")
    csv_path = filepath.with_suffix(".csv")

    if parquet_path.exists():
        if selected_cols:
            try:
                return pd.read_parquet(parquet_path, columns=selected_cols)
            except (KeyError, ValueError):
                df = pd.read_parquet(parquet_path)
                keep_cols = [col for col in selected_cols if col in df.columns]
                return df[keep_cols]
        return pd.read_parquet(parquet_path)
    elif csv_path.exists():
        if selected_cols:
            try:
                return pd.read_csv(csv_path, usecols=selected_cols)
            except ValueError:
                df = pd.read_csv(csv_path)
                keep_cols = [col for col in selected_cols if col in df.columns]
                return df[keep_cols]
        return pd.read_csv(csv_path)
    return None


def load_table(table: str, data_dir: Optional[Path] = None) -> Optional[pd.DataFrame]:
    """Load one input table with normalised column names and types."""
    processed_dir = (data_dir / "processed") if data_dir else config.processed_dir
    df = _load_file(processed_dir / TABLE_FILES[table])
    if df is None:
        return None
    df = ensure_column_types(normalise_column_names(df))
    validate_schema(df, table, strict=True)
    return df


def get_data_status(data_dir: Optional[Path] = None) -> Dict[str, Dict[str, bool]]:
    """Get status of all data files."""
    processed_dir = (data_dir / "processed") if data_dir else config.processed_dir
    status = {}
    for key, filename in TABLE_FILES.items():
        status[key] = {
            "parquet_exists": (processed_dir / f"{filename}.parquet").exists(),
            "csv_exists": (processed_dir / f"{filename}.csv").exists(),
        }
    return status


# =============================================================================
# DATA SOURCE
# =============================================================================

class FrameDataSource:
    """
    Read-only data interface over one DataFrame per table.

    Only the issue note table is written to, through upsert_issue_note. When
    the source was loaded from a directory the notes are persisted back to it.
    """

    def __init__(self, frames: Optional[Dict[str, pd.DataFrame]] = None,
                 notes_path: Optional[Path] = None,
                 default_capacity: Optional[float] = None):
        self._frames = {
            name: ensure_column_types(normalise_column_names(df))
            for name, df in (frames or {}).items()
            if df is not None
        }
        self._notes_path = notes_path
        self._default_capacity = default_capacity or config.default_capacity_hours_per_week

    @classmethod
    def from_directory(cls, data_dir: Optional[Path] = None) -> "FrameDataSource":
        data_dir = data_dir or config.data_dir
        frames = {}
        for table in TABLE_FILES:
            df = load_table(table, data_dir)
            if df is not None:
                frames[table] = df
                logger.debug("Loaded %s: %d rows", table, len(df))
            else:
                logger.info("Table %s not found under %s", table, data_dir / "processed")
        notes_path = data_dir / "processed" / f"{TABLE_FILES['issue_notes']}.parquet"
        if not notes_path.exists():
            notes_path = notes_path.with_suffix(".csv")
        return cls(frames, notes_path=notes_path)

    def _frame(self, table: str) -> pd.DataFrame:
        return self._frames.get(table, pd.DataFrame())

    # Reference data ----------------------------------------------------------

    def list_clients(self) -> List[Client]:
        return clients_from_frame(self._frame("clients"))

    def list_consultants(self) -> List[Consultant]:
        return consultants_from_frame(self._frame("consultants"), self._default_capacity)

    def list_contracts(self) -> List[Contract]:
        return contracts_from_frame(self._frame("contracts"))

    def list_benchmark_versions(self) -> List[BenchmarkVersion]:
        """Current and superseded benchmark rows."""
        frames = [f for f in (self._frame("benchmarks"), self._frame("benchmark_history")) if len(f) > 0]
        if not frames:
            return []
        return benchmarks_from_frame(pd.concat(frames, ignore_index=True))

    def list_holidays(self) -> List[Holiday]:
        return holidays_from_frame(self._frame("holidays"))

    # Timecards ---------------------------------------------------------------

    def _timecards_in(self, statuses: Iterable[str]) -> pd.DataFrame:
        df = self._frame("timecard_lines")
        if len(df) == 0:
            return df
        if "status" not in df.columns:
            return df
        wanted = {s.lower() for s in statuses}
        mask = df["status"].astype(str).str.strip().str.lower().isin(wanted)
        return df[mask]

    def query_timecard_totals(self, start: date, end: date,
                              statuses: Sequence[str] = APPROVED_STATUSES) -> List[TimecardLine]:
        """Timecard hours summed per (date, client, consultant, project)."""
        df = self._timecards_in(statuses)
        if len(df) == 0:
            return []

        df = df[df["timesheet_date"].notna()].copy()
        day = df["timesheet_date"].dt.normalize()
        df = df[(day >= pd.Timestamp(start)) & (day <= pd.Timestamp(end))].copy()
        if len(df) == 0:
            return []

        for col in HOUR_BUCKETS:
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0) if col in df.columns else 0.0
        if "project_id" not in df.columns:
            df["project_id"] = None

        df["timesheet_date"] = df["timesheet_date"].dt.normalize()
        df["client_id"] = df["client_id"].map(normalize_id)
        df["consultant_id"] = df["consultant_id"].map(normalize_id)
        df["project_id"] = df["project_id"].map(normalize_id)

        grouped = df.groupby(
            ["timesheet_date", "client_id", "consultant_id", "project_id"], dropna=False, sort=True
        )[HOUR_BUCKETS].sum().reset_index()
        return timecards_from_frame(grouped)

    def query_last_logged_dates(self, as_of: date,
                                statuses: Sequence[str] = APPROVED_OR_SUBMITTED) -> Dict[str, date]:
        """Most recent logged day per client, on or before as_of."""
        df = self._timecards_in(statuses)
        if len(df) == 0:
            return {}
        df = df[df["timesheet_date"].notna() & df["client_id"].notna()].copy()
        df = df[df["timesheet_date"].dt.normalize() <= pd.Timestamp(as_of)]
        if len(df) == 0:
            return {}
        df["client_id"] = df["client_id"].map(normalize_id)
        last = df.groupby("client_id")["timesheet_date"].max()
        return {client_id: ts.date() for client_id, ts in last.items() if client_id}

    # Issue notes -------------------------------------------------------------

    def get_issue_notes_by_keys(self, keys: Iterable[str]) -> List[IssueNote]:
        wanted = list(dict.fromkeys(keys))
        df = self._frame("issue_notes")
        if not wanted or len(df) == 0:
            return []
        return issue_notes_from_frame(df[df["issue_key"].astype(str).isin(wanted)])

    def upsert_issue_note(self, note: IssueNote) -> IssueNote:
        """Insert or replace the note stored under note.issue_key."""
        existing = {n.issue_key: n for n in self.get_issue_notes_by_keys([note.issue_key])}
        previous = existing.get(note.issue_key)
        if previous is not None:
            # Keep the first acknowledgement when the update carries none
            note.acknowledged_by = note.acknowledged_by or previous.acknowledged_by
            note.acknowledged_at = note.acknowledged_at or previous.acknowledged_at

        df = self._frame("issue_notes")
        if len(df) > 0:
            df = df[df["issue_key"].astype(str) != note.issue_key]
        row = pd.DataFrame([issue_note_to_row(note)])
        df = pd.concat([df, row], ignore_index=True) if len(df) > 0 else row
        self._frames["issue_notes"] = ensure_column_types(df)

        if self._notes_path is not None:
            self._notes_path.parent.mkdir(parents=True, exist_ok=True)
            if self._notes_path.suffix == ".parquet":
                self._frames["issue_notes"].to_parquet(self._notes_path, index=False)
            else:
                self._frames["issue_notes"].to_csv(self._notes_path, index=False)
            logger.info("Persisted issue note %s", note.issue_key)

        return issue_notes_from_frame(self._frames["issue_notes"].tail(1))[0]
