"""
Standard chart wrappers using Plotly.
"""
import plotly.express as px
import plotly.graph_objects as go
import pandas as pd
from typing import List, Dict, Any


# =============================================================================
# CHART THEME
# =============================================================================

CHART_COLORS = {
    "primary": "#1f77b4",
    "secondary": "#ff7f0e",
    "success": "#28a745",
    "warning": "#ffc107",
    "danger": "#dc3545",
    "neutral": "#6c757d",
}

CHART_TEMPLATE = "plotly_white"

DEFAULT_LAYOUT = {
    "template": CHART_TEMPLATE,
    "font": {"family": "Arial, sans-serif", "size": 12},
    "margin": {"l": 50, "r": 30, "t": 40, "b": 50},
    "hoverlabel": {"bgcolor": "white"},
}


def apply_layout(fig: go.Figure, **kwargs) -> go.Figure:
    """Apply standard layout to figure."""
    layout = {**DEFAULT_LAYOUT, **kwargs}
    fig.update_layout(**layout)
    return fig


# =============================================================================
# TIME SERIES
# =============================================================================

def multi_time_series(df: pd.DataFrame, x: str, y_cols: List[str],
                      title: str = "", names: Dict[str, str] = None) -> go.Figure:
    """
    Create time series with multiple metrics.
    """
    fig = go.Figure()
    names = names or {}

    colors = list(CHART_COLORS.values())

    for i, col in enumerate(y_cols):
        fig.add_trace(go.Scatter(
            x=df[x],
            y=df[col],
            name=names.get(col, col),
            mode="lines",
            line={"color": colors[i % len(colors)]},
        ))

    fig.update_layout(title=title, xaxis_title="")

    return apply_layout(fig)


def hours_trend_chart(trend: List[Dict[str, Any]]) -> go.Figure:
    """Cumulative expected vs actual hours over the period."""
    df = pd.DataFrame(trend)
    return multi_time_series(
        df, "date", ["expected_hours_cumulative", "actual_hours_cumulative"],
        title="Cumulative Hours",
        names={"expected_hours_cumulative": "Expected", "actual_hours_cumulative": "Actual"},
    )


def margin_trend_chart(trend: List[Dict[str, Any]]) -> go.Figure:
    """Cumulative revenue against expected and actual cost."""
    df = pd.DataFrame(trend)
    return multi_time_series(
        df, "date", ["revenue_cumulative", "expected_cost_cumulative", "actual_cost_cumulative"],
        title="Cumulative Revenue & Cost",
        names={
            "revenue_cumulative": "Revenue",
            "expected_cost_cumulative": "Expected Cost",
            "actual_cost_cumulative": "Actual Cost",
        },
    )


# =============================================================================
# CAPACITY CHARTS
# =============================================================================

def capacity_utilisation_bar(planning: List[Dict[str, Any]],
                             title: str = "Next Month Utilisation") -> go.Figure:
    """Projected utilisation per consultant with the 100% line marked."""
    df = pd.DataFrame(planning)
    if len(df) == 0:
        return apply_layout(go.Figure(), title=title)

    df["utilization_pct"] = df["utilization"] * 100
    fig = px.bar(
        df, x="utilization_pct", y="consultant_name", orientation="h",
        title=title,
        color_discrete_sequence=[CHART_COLORS["primary"]],
    )
    fig.add_vline(x=100, line_dash="dash", line_color=CHART_COLORS["danger"])
    fig.update_layout(xaxis_title="Utilisation %", yaxis_title="",
                      yaxis={"categoryorder": "total ascending"})

    return apply_layout(fig)
