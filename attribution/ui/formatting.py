"""
Consistent number and display formatting.
"""
import pandas as pd
from typing import Union, Optional


# =============================================================================
# NUMBER FORMATTERS
# =============================================================================

def fmt_currency(value: Union[float, int, None], decimals: int = 0) -> str:
    """Format as currency: $1,234 or $1,234.56"""
    if value is None or pd.isna(value):
        return "—"
    if decimals == 0:
        return f"${value:,.0f}"
    return f"${value:,.{decimals}f}"


def fmt_hours(value: Union[float, int, None]) -> str:
    """Format hours: 1,234.5"""
    if value is None or pd.isna(value):
        return "—"
    return f"{value:,.1f}"


def fmt_rate(value: Union[float, int, None]) -> str:
    """Format hourly rate: $123/hr"""
    if value is None or pd.isna(value):
        return "—"
    return f"${value:,.0f}/hr"


def fmt_ratio(value: Union[float, int, None], decimals: int = 1) -> str:
    """Format a 0-1 ratio as a percentage: 0.123 -> 12.3%"""
    if value is None or pd.isna(value):
        return "—"
    return f"{value * 100:,.{decimals}f}%"


def fmt_variance(value: Union[float, int, None], is_ratio: bool = False) -> str:
    """Format variance with +/- sign."""
    if value is None or pd.isna(value):
        return "—"

    sign = "+" if value > 0 else ""
    if is_ratio:
        return f"{sign}{value * 100:,.1f}%"
    return f"{sign}{value:,.1f}"


# =============================================================================
# STATUS INDICATORS
# =============================================================================

SEVERITY_COLORS = {
    "critical": "#dc3545",
    "warning": "#ffc107",
    None: "#28a745",
}


def severity_dot(severity: Optional[str]) -> str:
    """Return colored status dot HTML for an issue severity."""
    color = SEVERITY_COLORS.get(severity, "#6c757d")
    return f'<span style="color: {color}; font-size: 1.2em;">●</span>'


# =============================================================================
# DATAFRAME FORMATTERS
# =============================================================================

CURRENCY_COLS = [
    "revenue_period", "revenue_to_date", "projected_revenue_period",
    "expected_cost_period", "actual_cost_to_date", "projected_cost_period",
    "expected_gm_period", "actual_gm_to_date", "projected_gm_period",
    "software_revenue_period", "software_cost_period", "bench_cost_to_date",
    "monthly_revenue", "trailing_revenue", "trailing_gm",
]

HOURS_COLS = [
    "expected_hours_period", "expected_hours_to_date", "actual_hours_to_date",
    "projected_hours_period", "variance_to_date_hours", "variance_eom_hours",
    "capacity_hours", "projected_hours", "available_capacity",
    "paid_hours_to_date", "logged_hours_to_date", "bench_hours_to_date",
]

RATIO_COLS = [
    "variance_to_date_pct", "variance_eom_pct", "expected_gm_percent",
    "projected_gm_percent", "utilization", "utilization_to_date",
    "trailing_gm_pct", "expected_gm_pct", "trailing_gm_variance_pct",
]

RATE_COLS = ["bill_rate", "cost_rate"]


def format_metric_df(df: pd.DataFrame) -> pd.DataFrame:
    """
    Format a report table for display.

    Applies appropriate formatting to known column types.
    """
    df = df.copy()

    for col in df.columns:
        if col in CURRENCY_COLS:
            df[col] = df[col].apply(fmt_currency)
        elif col in HOURS_COLS:
            df[col] = df[col].apply(fmt_hours)
        elif col in RATIO_COLS:
            df[col] = df[col].apply(fmt_ratio)
        elif col in RATE_COLS:
            df[col] = df[col].apply(fmt_rate)

    return df
