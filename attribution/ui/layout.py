"""
Layout components: data source, sidebar filters, issue tables.
"""
import streamlit as st
import pandas as pd
from typing import Any, Dict, List

from attribution.config import config
from attribution.data.loader import FrameDataSource
from attribution.engine.report import list_report_roles
from attribution.ui.formatting import format_metric_df
from attribution.ui.state import get_state, set_state


# =============================================================================
# DATA SOURCE
# =============================================================================

@st.cache_resource(ttl=config.cache_ttl_seconds, show_spinner=False)
def get_data_source() -> FrameDataSource:
    """One shared source per process; notes written through it stay visible."""
    return FrameDataSource.from_directory(config.data_dir)


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def get_filter_options(_source: FrameDataSource) -> Dict[str, Any]:
    clients = sorted(_source.list_clients(), key=lambda c: (c.name or "").lower())
    consultants = sorted(
        (c for c in _source.list_consultants() if c.is_active),
        key=lambda c: (c.name or "").lower(),
    )
    return {
        "clients": {c.client_id: c.name for c in clients},
        "consultants": {c.consultant_id: c.name for c in consultants},
        "roles": list_report_roles(_source),
    }


# =============================================================================
# FILTERS
# =============================================================================

def render_report_filters(source: FrameDataSource) -> Dict[str, Any]:
    """Sidebar filters shared by the report and weekly issue pages."""
    options = get_filter_options(source)

    with st.sidebar:
        st.header("Filters")

        clients = st.multiselect(
            "Clients",
            options=list(options["clients"].keys()),
            default=get_state("selected_clients"),
            format_func=lambda cid: options["clients"].get(cid) or cid,
        )
        consultants = st.multiselect(
            "Consultants",
            options=list(options["consultants"].keys()),
            default=get_state("selected_consultants"),
            format_func=lambda cid: options["consultants"].get(cid) or cid,
        )
        roles = ["All Roles"] + options["roles"]
        current_role = get_state("selected_role")
        role = st.selectbox(
            "Role",
            roles,
            index=roles.index(current_role) if current_role in roles else 0,
        )
        include_submitted = st.checkbox("Include submitted timecards", value=get_state("include_submitted"))
        business_days_only = st.checkbox("Business days only", value=get_state("business_days_only"))

    set_state("selected_clients", clients)
    set_state("selected_consultants", consultants)
    set_state("selected_role", None if role == "All Roles" else role)
    set_state("include_submitted", include_submitted)
    set_state("business_days_only", business_days_only)

    return {
        "client_ids": tuple(clients),
        "consultant_ids": tuple(consultants),
        "role": get_state("selected_role"),
        "include_submitted": include_submitted,
        "business_days_only": business_days_only,
    }


# =============================================================================
# TABLES
# =============================================================================

def render_table(records: List[Dict[str, Any]], columns: List[str], empty_message: str = "No rows."):
    """Display selected columns of a report table with standard formatting."""
    if not records:
        st.info(empty_message)
        return
    df = pd.DataFrame(records)
    keep = [c for c in columns if c in df.columns]
    st.dataframe(format_metric_df(df[keep]), use_container_width=True, hide_index=True)
