"""
Typed records for the reference data consumed by the engine.

Rows arrive as DataFrames off the data store and are coerced into these
records exactly once, in the *_from_frame helpers below.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from attribution.data.semantic import (
    EPOCH_EFFECTIVE_DATE,
    normalize_distribution,
    normalize_id,
    normalize_role,
    safe_num,
    to_bool,
    to_date,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Client:
    client_id: str
    name: str
    is_active: bool


@dataclass(frozen=True)
class Consultant:
    consultant_id: str
    name: str
    pay_type: str
    pay_rate: float
    hourly_rate: float
    capacity_hours_per_week: float
    timecard_cycle: str
    is_active: bool
    job_title: Optional[str] = None


@dataclass(frozen=True)
class StaffLine:
    """One entry of a contract's free-form additional staff list."""
    role: str
    name: str
    rate: float

    @property
    def label(self) -> str:
        return f"{self.role}: {self.name}" if self.name else self.role


@dataclass(frozen=True)
class Contract:
    contract_id: str
    client_id: str
    contract_type: str
    start_date: Optional[date]
    end_date: Optional[date]
    contract_name: Optional[str] = None
    contract_length_months: Optional[int] = None
    end_reason: Optional[str] = None
    monthly_fee: float = 0.0
    total_project_fee: float = 0.0
    onboarding_fee: float = 0.0
    assigned_cfo: Optional[str] = None
    assigned_cfo_rate: float = 0.0
    assigned_controller: Optional[str] = None
    assigned_controller_rate: float = 0.0
    assigned_senior_accountant: Optional[str] = None
    assigned_senior_accountant_rate: float = 0.0
    software_name: Optional[str] = None
    software_rate: float = 0.0
    software_quantity: float = 1.0
    software_cost: float = 0.0
    software_provided_free: bool = False
    additional_staff: Tuple[StaffLine, ...] = field(default_factory=tuple)

    @property
    def assigned_roles(self) -> List[Tuple[str, Optional[str], float]]:
        """(role label, assigned consultant reference, monthly rate)."""
        return [
            ("CFO", self.assigned_cfo, self.assigned_cfo_rate),
            ("Controller", self.assigned_controller, self.assigned_controller_rate),
            ("Senior Accountant", self.assigned_senior_accountant, self.assigned_senior_accountant_rate),
        ]


@dataclass(frozen=True)
class BenchmarkVersion:
    client_id: str
    consultant_id: str
    role: str
    effective_date: date
    low: float
    target: float
    high: float
    bill_rate: float
    weekly_hours: float = 0.0
    distribution_type: Optional[str] = None
    benchmark_id: Optional[str] = None

    @property
    def role_norm(self) -> str:
        return normalize_role(self.role)


@dataclass(frozen=True)
class TimecardLine:
    work_date: date
    client_id: str
    consultant_id: str
    project_id: Optional[str]
    client_facing_hours: float
    non_client_facing_hours: float
    other_hours: float

    @property
    def total_hours(self) -> float:
        return self.client_facing_hours + self.non_client_facing_hours + self.other_hours


@dataclass(frozen=True)
class Holiday:
    holiday_date: date
    name: str = ""


NOTE_STATUSES = ["open", "acknowledged", "snoozed", "closed"]


@dataclass
class IssueNote:
    issue_key: str
    issue_type: str
    severity: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    client_id: Optional[str] = None
    consultant_id: Optional[str] = None
    role: Optional[str] = None
    status: str = "open"
    decision: Optional[str] = None
    snoozed_until: Optional[date] = None
    notes: Optional[str] = None
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "decision": self.decision,
            "snoozed_until": self.snoozed_until.isoformat() if self.snoozed_until else None,
            "notes": self.notes,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
        }


# =============================================================================
# FRAME COERCION
# =============================================================================

def _get(row: pd.Series, col: str, default: Any = None) -> Any:
    value = row.get(col, default)
    if value is None:
        return default
    try:
        if pd.isna(value):
            return default
    except (TypeError, ValueError):
        pass
    return value


def _text(row: pd.Series, col: str) -> Optional[str]:
    value = _get(row, col)
    if value is None:
        return None
    # Integer references read from csv arrive as floats
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    s = str(value).strip()
    return s or None


def _records(df: Optional[pd.DataFrame]) -> List[pd.Series]:
    if df is None or len(df) == 0:
        return []
    return [row for _, row in df.iterrows()]


def parse_additional_staff(raw: Any) -> Tuple[StaffLine, ...]:
    """Parse the additional staff JSON list; malformed payloads yield nothing."""
    if raw is None:
        return ()
    try:
        if pd.isna(raw):
            return ()
    except (TypeError, ValueError):
        pass
    if isinstance(raw, str):
        if not raw.strip():
            return ()
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed additional staff payload: %.60s", raw)
            return ()
    if not isinstance(raw, list):
        return ()

    lines = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        rate = safe_num(item.get("rate", item.get("Rate")))
        if rate <= 0:
            continue
        role = str(item.get("role") or item.get("Role") or "Additional Staff").strip()
        name = str(item.get("name") or item.get("Name") or "").strip()
        lines.append(StaffLine(role=role, name=name, rate=rate))
    return tuple(lines)


def clients_from_frame(df: Optional[pd.DataFrame]) -> List[Client]:
    clients = []
    for row in _records(df):
        client_id = normalize_id(_get(row, "client_id"))
        if client_id is None:
            logger.debug("Dropping client row without id")
            continue
        clients.append(Client(
            client_id=client_id,
            name=_text(row, "client_name") or "",
            is_active=to_bool(_get(row, "active_status")),
        ))
    return clients


def _consultant_active(row: pd.Series) -> bool:
    # Missing status means active
    status = _get(row, "status")
    if status is None:
        return True
    s = str(status).strip().lower()
    return s in ("", "active", "1", "true")


def consultants_from_frame(df: Optional[pd.DataFrame], default_capacity: float = 40.0) -> List[Consultant]:
    consultants = []
    for row in _records(df):
        consultant_id = normalize_id(_get(row, "consultant_id"))
        if consultant_id is None:
            logger.debug("Dropping consultant row without id")
            continue
        name = " ".join(p for p in (_text(row, "first_name"), _text(row, "last_name")) if p)
        consultants.append(Consultant(
            consultant_id=consultant_id,
            name=name or _text(row, "consultant_name") or consultant_id,
            pay_type=(_text(row, "pay_type") or "").lower(),
            pay_rate=safe_num(_get(row, "pay_rate")),
            hourly_rate=safe_num(_get(row, "hourly_rate")),
            capacity_hours_per_week=safe_num(_get(row, "capacity_hours_per_week")) or default_capacity,
            timecard_cycle=(_text(row, "timecard_cycle") or "").lower(),
            is_active=_consultant_active(row),
            job_title=_text(row, "job_title"),
        ))
    return consultants


def contracts_from_frame(df: Optional[pd.DataFrame]) -> List[Contract]:
    contracts = []
    for row in _records(df):
        contract_id = normalize_id(_get(row, "contract_id"))
        client_id = normalize_id(_get(row, "client_id"))
        if contract_id is None or client_id is None:
            logger.debug("Dropping contract row without contract or client id")
            continue
        length = _get(row, "contract_length")
        quantity = _get(row, "assigned_software_quantity")
        contracts.append(Contract(
            contract_id=contract_id,
            client_id=client_id,
            contract_type=_text(row, "contract_type") or "",
            start_date=to_date(_get(row, "contract_start_date")),
            end_date=to_date(_get(row, "contract_end_date")),
            contract_name=_text(row, "contract_name"),
            contract_length_months=int(safe_num(length)) if length is not None else None,
            end_reason=_text(row, "contract_end_reason"),
            monthly_fee=safe_num(_get(row, "monthly_fee")),
            total_project_fee=safe_num(_get(row, "total_project_fee")),
            onboarding_fee=safe_num(_get(row, "onboarding_fee")),
            assigned_cfo=_text(row, "assigned_cfo"),
            assigned_cfo_rate=safe_num(_get(row, "assigned_cfo_rate")),
            assigned_controller=_text(row, "assigned_controller"),
            assigned_controller_rate=safe_num(_get(row, "assigned_controller_rate")),
            assigned_senior_accountant=_text(row, "assigned_senior_accountant"),
            assigned_senior_accountant_rate=safe_num(_get(row, "assigned_senior_accountant_rate")),
            software_name=_text(row, "assigned_software"),
            software_rate=safe_num(_get(row, "assigned_software_rate")),
            software_quantity=safe_num(quantity) if quantity is not None else 1.0,
            software_cost=safe_num(_get(row, "assigned_software_cost")),
            software_provided_free=to_bool(_get(row, "assigned_software_provided_free")),
            additional_staff=parse_additional_staff(_get(row, "additional_staff")),
        ))
    return contracts


def benchmarks_from_frame(df: Optional[pd.DataFrame]) -> List[BenchmarkVersion]:
    versions = []
    for row in _records(df):
        client_id = normalize_id(_get(row, "client_id"))
        consultant_id = normalize_id(_get(row, "consultant_id"))
        if client_id is None or consultant_id is None:
            logger.debug("Dropping benchmark row without client or consultant id")
            continue
        versions.append(BenchmarkVersion(
            client_id=client_id,
            consultant_id=consultant_id,
            role=_text(row, "role") or "",
            effective_date=to_date(_get(row, "effective_date")) or EPOCH_EFFECTIVE_DATE,
            low=safe_num(_get(row, "low_range_hours")),
            target=safe_num(_get(row, "target_hours")),
            high=safe_num(_get(row, "high_range_hours")),
            bill_rate=safe_num(_get(row, "bill_rate")),
            weekly_hours=safe_num(_get(row, "weekly_hours")),
            distribution_type=normalize_distribution(_get(row, "distribution_type")),
            benchmark_id=normalize_id(_get(row, "benchmark_id")),
        ))
    return versions


def timecards_from_frame(df: Optional[pd.DataFrame]) -> List[TimecardLine]:
    lines = []
    for row in _records(df):
        work_date = to_date(_get(row, "timesheet_date"))
        client_id = normalize_id(_get(row, "client_id"))
        consultant_id = normalize_id(_get(row, "consultant_id"))
        if work_date is None or client_id is None or consultant_id is None:
            continue
        lines.append(TimecardLine(
            work_date=work_date,
            client_id=client_id,
            consultant_id=consultant_id,
            project_id=normalize_id(_get(row, "project_id")),
            client_facing_hours=safe_num(_get(row, "client_facing_hours")),
            non_client_facing_hours=safe_num(_get(row, "non_client_facing_hours")),
            other_hours=safe_num(_get(row, "other_task_hours")),
        ))
    return lines


def holidays_from_frame(df: Optional[pd.DataFrame]) -> List[Holiday]:
    holidays = []
    for row in _records(df):
        d = to_date(_get(row, "holiday_date"))
        if d is None:
            continue
        holidays.append(Holiday(holiday_date=d, name=_text(row, "holiday_name") or ""))
    return holidays


def issue_notes_from_frame(df: Optional[pd.DataFrame]) -> List[IssueNote]:
    notes = []
    for row in _records(df):
        key = _text(row, "issue_key")
        if not key:
            continue
        acknowledged_at = _get(row, "acknowledged_at")
        if acknowledged_at is not None:
            ts = pd.to_datetime(acknowledged_at, errors="coerce")
            acknowledged_at = None if pd.isna(ts) else ts.to_pydatetime()
        notes.append(IssueNote(
            issue_key=key,
            issue_type=_text(row, "issue_type") or "",
            severity=_text(row, "severity"),
            period_start=to_date(_get(row, "period_start")),
            period_end=to_date(_get(row, "period_end")),
            client_id=normalize_id(_get(row, "client_id")),
            consultant_id=normalize_id(_get(row, "consultant_id")),
            role=_text(row, "role"),
            status=_text(row, "status") or "open",
            decision=_text(row, "decision"),
            snoozed_until=to_date(_get(row, "snoozed_until")),
            notes=_text(row, "notes"),
            acknowledged_by=_text(row, "acknowledged_by"),
            acknowledged_at=acknowledged_at,
        ))
    return notes


def issue_note_to_row(note: IssueNote) -> Dict[str, Any]:
    return {
        "issue_key": note.issue_key,
        "issue_type": note.issue_type,
        "severity": note.severity,
        "period_start": note.period_start.isoformat() if note.period_start else None,
        "period_end": note.period_end.isoformat() if note.period_end else None,
        "client_id": note.client_id,
        "consultant_id": note.consultant_id,
        "role": note.role,
        "status": note.status,
        "decision": note.decision,
        "snoozed_until": note.snoozed_until.isoformat() if note.snoozed_until else None,
        "notes": note.notes,
        "acknowledged_by": note.acknowledged_by,
        "acknowledged_at": note.acknowledged_at.isoformat() if note.acknowledged_at else None,
    }
