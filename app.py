"""
Performance & Revenue Attribution Engine

Main entry point for Streamlit app.
"""
import streamlit as st
from pathlib import Path
from datetime import datetime, timezone

# Page config must be first Streamlit command
st.set_page_config(
    page_title="Performance & Revenue Attribution",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

import sys
sys.path.insert(0, str(Path(__file__).parent))

from attribution.ui.state import init_state
from attribution.ui.layout import get_data_source
from attribution.data.loader import get_data_status
from attribution.config import config, configure_logging, TABLE_FILES, REQUIRED_COLUMNS


def main():
    """Main app entry point."""
    configure_logging()
    init_state()

    st.title("Performance & Revenue Attribution")
    st.caption("Client → Consultant → Role")

    status = get_data_status()
    missing = [
        table for table, info in status.items()
        if table != "issue_notes" and not (info["parquet_exists"] or info["csv_exists"])
    ]

    if "timecard_lines" in missing or "benchmarks" in missing:
        st.error("No data found!")
        required = "\n".join(
            f"- `{TABLE_FILES[t]}.parquet` (or .csv): {', '.join(cols)}"
            for t, cols in REQUIRED_COLUMNS.items()
        )
        st.markdown(f"""
        ### Setup Required

        Please place your data files in: `{config.processed_dir}`

        Tables and required columns:
        {required}

        Run `python scripts/validate_inputs.py` to check them.
        """)
        st.info("Once data is in place, refresh this page.")
        return

    if missing:
        st.warning(f"Optional tables not found: {', '.join(missing)}")

    with st.expander("Data fingerprint", expanded=False):
        rows = []
        for filename in TABLE_FILES.values():
            for ext in ("parquet", "csv"):
                path = config.processed_dir / f"{filename}.{ext}"
                if path.exists():
                    mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                    rows.append({
                        "file": path.name,
                        "size_mb": round(path.stat().st_size / (1024 * 1024), 2),
                        "modified_utc": mtime.strftime("%Y-%m-%d %H:%M"),
                    })
        st.dataframe(rows, use_container_width=True)

    with st.spinner("Loading data..."):
        try:
            source = get_data_source()
        except Exception as e:
            st.error(f"Error loading data: {e}")
            return

    st.markdown("---")

    col1, col2 = st.columns([1, 4])

    with col1:
        st.markdown("### Quick Links")
        st.page_link("pages/1_Performance_Report.py", label="Performance Report", icon="📈")
        st.page_link("pages/2_Weekly_Issues.py", label="Weekly Issues", icon="🚩")
        st.page_link("pages/3_Capacity_Planning.py", label="Capacity Planning", icon="🗓️")

    with col2:
        st.markdown("### Data Overview")
        c1, c2, c3, c4 = st.columns(4)
        with c1:
            st.metric("Clients", f"{sum(1 for c in source.list_clients() if c.is_active):,} active")
        with c2:
            st.metric("Consultants", f"{sum(1 for c in source.list_consultants() if c.is_active):,} active")
        with c3:
            st.metric("Contracts", f"{len(source.list_contracts()):,}")
        with c4:
            st.metric("Benchmark Versions", f"{len(source.list_benchmark_versions()):,}")


if __name__ == "__main__":
    main()
