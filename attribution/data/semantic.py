"""
Semantic layer: identity normalisation and the composite assignment key.

CRITICAL: Expected hours, actual hours and revenue are all accumulated under
AssignmentKey. Every lookup must go through these helpers so the three
accumulators join on identical keys.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

import numpy as np
import pandas as pd


# =============================================================================
# SYNTHETIC IDENTITIES
# =============================================================================

UNASSIGNED = "__unassigned__"
UNBENCHMARKED_ROLE = "__unbenchmarked__"
UNASSIGNED_LABEL = "(Unassigned)"
UNKNOWN_CLIENT_LABEL = "(Unknown Client)"
UNKNOWN_CONSULTANT_LABEL = "(Unknown Consultant)"
UNBENCHMARKED_LABEL = "Unbenchmarked"

EPOCH_EFFECTIVE_DATE = date(1900, 1, 1)
OPEN_END_DATE = date(2999, 12, 31)

_GUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_WS_RE = re.compile(r"\s+")


# =============================================================================
# NORMALISATION
# =============================================================================

def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def normalize_role(role: Any) -> str:
    """Trim, lower-case and collapse inner whitespace."""
    if _is_missing(role):
        return ""
    return _WS_RE.sub(" ", str(role).strip().lower())


def normalize_guid(value: Any) -> Optional[str]:
    """Return the lower-cased GUID, or None when value is not a GUID."""
    if _is_missing(value):
        return None
    s = str(value).strip()
    return s.lower() if _GUID_RE.match(s) else None


def normalize_id(value: Any) -> Optional[str]:
    """GUIDs are lower-cased, other identifiers are trimmed strings."""
    if _is_missing(value):
        return None
    s = str(value).strip()
    if not s:
        return None
    # Integer ids read from csv arrive as floats
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        s = str(int(value))
    return normalize_guid(s) or s


def normalize_distribution(value: Any) -> Optional[str]:
    """Map distribution spellings onto the canonical names; None when unset."""
    name = normalize_role(value)
    if not name:
        return None
    return name.replace("-", "_").replace(" ", "_")


def safe_num(value: Any) -> float:
    """Coerce to a finite float, 0 otherwise."""
    if _is_missing(value):
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return n if np.isfinite(n) else 0.0


def to_date(value: Any) -> Optional[date]:
    """Parse anything date-like into a datetime.date; None when unusable."""
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.date()


def to_bool(value: Any) -> bool:
    if _is_missing(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "active")
    return bool(value)


def date_str(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None


# =============================================================================
# COMPOSITE KEY
# =============================================================================

@dataclass(frozen=True, order=True)
class AssignmentKey:
    """(client, consultant, normalised role) identity of an assignment row."""

    client_id: str
    consultant_id: str
    role: str

    @classmethod
    def of(cls, client_id: str, consultant_id: str, role: Any) -> "AssignmentKey":
        return cls(client_id, consultant_id, normalize_role(role))

    @property
    def is_unassigned(self) -> bool:
        return self.consultant_id == UNASSIGNED

    @property
    def is_unbenchmarked(self) -> bool:
        return self.role == UNBENCHMARKED_ROLE

    @property
    def is_software(self) -> bool:
        return self.role.startswith("software:")

    def __str__(self) -> str:
        return f"{self.client_id}|{self.consultant_id}|{self.role}"
