"""
Capacity Planning

Next month's projected utilisation per consultant and contracts coming
to an end.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
import sys

import streamlit as st

st.set_page_config(
    page_title="Capacity Planning",
    page_icon="🗓️",
    layout="wide",
)

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.engine.errors import ReportError
from attribution.engine.report import build_capacity_plan, list_contracts_ending
from attribution.exports import export_dataframe_csv
from attribution.ui.charts import capacity_utilisation_bar
from attribution.ui.layout import get_data_source, render_table
from attribution.ui.state import init_state

import pandas as pd

init_state()


def main():
    st.title("🗓️ Capacity Planning")
    st.caption("*Who has room next month, and which contracts are ending?*")

    source = get_data_source()
    as_of = st.date_input("As of", value=date.today())

    try:
        plan = build_capacity_plan(source, as_of)
    except ReportError as e:
        st.error(f"Capacity plan failed: {e}")
        return

    meta = plan["meta"]
    st.markdown(
        f"**{meta['next_month_start']} to {meta['next_month_end']}** · {meta['business_days']} business days"
    )
    st.plotly_chart(capacity_utilisation_bar(plan["capacity_planning"]), use_container_width=True)
    render_table(
        plan["capacity_planning"],
        ["consultant_name", "capacity_hours", "projected_hours", "utilization", "available_capacity"],
    )

    st.subheader("Contracts ending next month")
    render_table(
        plan["contracts_ending_next_month"],
        ["contract_id", "client_name", "consultant_name", "contract_end_date", "contract_type"],
        "No assigned contracts end next month.",
    )

    st.divider()
    st.subheader("Contracts ending soon")
    days_ahead = st.slider("Days ahead", min_value=7, max_value=180, value=60)
    ending = list_contracts_ending(source, as_of, days_ahead=days_ahead)
    render_table(
        ending,
        ["client_name", "contract_name", "contract_type", "effective_end_date",
         "days_until_end", "is_month_to_month", "monthly_revenue"],
        "No contracts ending in this window.",
    )
    if ending:
        data, filename = export_dataframe_csv(pd.DataFrame(ending), f"contracts_ending_{as_of}.csv")
        st.download_button("Download CSV", data, file_name=filename, mime="text/csv")


main()
