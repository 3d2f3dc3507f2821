"""
Schema validation and column type coercion for the input tables.
"""
import pandas as pd
from typing import List, Tuple, Dict

from attribution.config import REQUIRED_COLUMNS, OPTIONAL_COLUMNS


class SchemaValidationError(Exception):
    """Raised when required columns are missing."""
    pass


NUMERIC_COLUMNS = [
    "pay_rate", "hourly_rate", "capacity_hours_per_week",
    "monthly_fee", "total_project_fee", "onboarding_fee",
    "assigned_cfo_rate", "assigned_controller_rate", "assigned_senior_accountant_rate",
    "assigned_software_rate", "assigned_software_quantity", "assigned_software_cost",
    "low_range_hours", "target_hours", "high_range_hours", "bill_rate", "weekly_hours",
    "client_facing_hours", "non_client_facing_hours", "other_task_hours",
    "contract_length",
]

DATE_COLUMNS = [
    "contract_start_date", "contract_end_date", "effective_date", "holiday_date",
    "timesheet_date", "period_start", "period_end", "snoozed_until",
]


def validate_required_columns(df: pd.DataFrame, table_name: str) -> Tuple[bool, List[str]]:
    """
    Validate that required columns exist in dataframe.
    Returns (is_valid, missing_columns).
    """
    if table_name not in REQUIRED_COLUMNS:
        return True, []

    required = REQUIRED_COLUMNS[table_name]
    missing = [col for col in required if col not in df.columns]

    return len(missing) == 0, missing


def check_optional_columns(df: pd.DataFrame, table_name: str) -> List[str]:
    """
    Check which optional columns are missing.
    Returns list of missing optional columns.
    """
    if table_name not in OPTIONAL_COLUMNS:
        return []

    return [col for col in OPTIONAL_COLUMNS[table_name] if col not in df.columns]


def validate_schema(df: pd.DataFrame, table_name: str, strict: bool = True) -> Dict:
    """
    Full schema validation.

    Args:
        df: DataFrame to validate
        table_name: Name of table for column requirements lookup
        strict: If True, raise error on missing required columns

    Returns:
        Dict with validation results
    """
    is_valid, missing_required = validate_required_columns(df, table_name)
    missing_optional = check_optional_columns(df, table_name)

    result = {
        "is_valid": is_valid,
        "missing_required": missing_required,
        "missing_optional": missing_optional,
        "total_columns": len(df.columns),
        "total_rows": len(df),
    }

    if strict and not is_valid:
        raise SchemaValidationError(
            f"Missing required columns in {table_name}: {missing_required}"
        )

    return result


def normalise_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Map ClientID / Client ID / client-id style headers onto snake_case."""
    def _snake(name: str) -> str:
        s = str(name).strip().replace("-", "_").replace(" ", "_")
        out = []
        for i, ch in enumerate(s):
            if ch.isupper() and i > 0 and (s[i - 1].islower() or (i + 1 < len(s) and s[i + 1].islower())) \
                    and s[i - 1] != "_":
                out.append("_")
            out.append(ch.lower())
        return "".join(out)

    return df.rename(columns={col: _snake(col) for col in df.columns})


def ensure_column_types(df: pd.DataFrame) -> pd.DataFrame:
    """Ensure consistent column types."""
    df = df.copy()

    for col in NUMERIC_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")

    for col in DATE_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors="coerce")

    return df
