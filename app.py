"""
LPB Meter Survey — Interactive Dashboard

Run with:  streamlit run app.py
"""

import sys
import tempfile
from datetime import datetime
from pathlib import Path

import streamlit as st
import plotly.graph_objects as go
import plotly.express as px
import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent))

from lpb_dashboard.cache import DatasetCache
from lpb_dashboard.config import (
    REGION_NAME,
    UNIT_COLORS,
    VALIDATION_LABELS,
    load_settings,
)
from lpb_dashboard.dashboard import FilterState, apply_filter, filter_options, mappable_records
from lpb_dashboard.errors import ParseError
from lpb_dashboard.kpis import (
    GroupBy,
    SummaryMode,
    aggregate_by,
    daily_realization,
    overall_summary,
    summary_frame,
)
from lpb_dashboard.loaders.delimited import ParserService
from lpb_dashboard.records import ValidationStatus
from lpb_dashboard.service import DatasetService, build_sources
from lpb_dashboard.simulator import SimulatedSource
from lpb_dashboard.transforms import records_from_file, records_to_frame

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="LPB Meter Survey Dashboard",
    page_icon="⚡",
    layout="wide",
    initial_sidebar_state="expanded",
)

STATUS_COLORS = {
    "VALID": "#10b981",
    "INVALID": "#f43f5e",
    "UNVALIDATED": "#94a3b8",
}


# ---------------------------------------------------------------------------
# Session services
# ---------------------------------------------------------------------------
def get_service() -> DatasetService:
    """One parser, cache and service per browser session."""
    if "service" not in st.session_state:
        settings = load_settings()
        parser = ParserService()
        sources = build_sources(settings, parser) or [SimulatedSource()]
        st.session_state.settings = settings
        st.session_state.parser = parser
        st.session_state.service = DatasetService(sources, DatasetCache(ttl=settings.cache_ttl))
    return st.session_state.service


service = get_service()
settings = st.session_state.settings

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("LPB Dashboard")
st.sidebar.markdown(REGION_NAME)
st.sidebar.divider()

force = st.sidebar.button("Refresh data")
result = service.fetch_dataset(settings.table, force_refresh=force)
records = list(result.records)

options = filter_options(records)
selected_period = st.sidebar.selectbox("Period (BLTH)", [""] + options["periods"], format_func=lambda p: p or "All")
selected_unit = st.sidebar.selectbox("Unit", [""] + options["units"], format_func=lambda u: u or "All")
officer_query = st.sidebar.text_input("Officer name contains")
selected_status = st.sidebar.selectbox(
    "Validation",
    [""] + [s.value for s in ValidationStatus],
    format_func=lambda s: VALIDATION_LABELS.get(s, "All"),
)

page = st.sidebar.radio(
    "Navigate",
    ["Overview", "Units & Officers", "Map", "Daily Realization", "Admin"],
)

st.sidebar.divider()
if result.timestamp:
    synced = datetime.fromtimestamp(result.timestamp).strftime("%d %b %Y %H:%M:%S")
    st.sidebar.caption(f"Last sync: {synced} ({'cache' if result.from_cache else 'live'}, {result.source})")
else:
    st.sidebar.caption("Last sync: never")
if result.error:
    st.sidebar.warning(f"Data source problem: {result.error}")

filters = FilterState(
    period=selected_period,
    unit=selected_unit,
    officer=officer_query,
    validation=selected_status or None,
)
filtered = apply_filter(records, filters)


# ---------------------------------------------------------------------------
# Helper: stat card
# ---------------------------------------------------------------------------
def stat_card(label: str, value: int, total: int, color: str):
    share = f"{value / total * 100:.1f}%" if total else "N/A"
    st.markdown(
        f"""
        <div style="background: linear-gradient(135deg, {color}22, {color}11);
                    border-left: 4px solid {color};
                    border-radius: 8px; padding: 16px; margin-bottom: 8px;">
            <div style="font-size: 13px; color: #888; font-weight: 600; text-transform: uppercase;">{label}</div>
            <div style="font-size: 28px; font-weight: 700; color: #222; margin: 4px 0;">{value:,}</div>
            <div style="font-size: 13px; color: #666;">{share} of records</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


# ===========================================================================
# PAGE: Overview
# ===========================================================================
if page == "Overview":
    st.title("Survey Overview")
    st.caption(f"{len(filtered):,} of {len(records):,} records match the filters")
    if result.rejected:
        st.caption(f"{result.rejected} source rows skipped (no usable IDPEL)")

    stats = overall_summary(filtered)
    cols = st.columns(4)
    with cols[0]:
        stat_card("Total", stats["total"], stats["total"], "#6366f1")
    with cols[1]:
        stat_card(VALIDATION_LABELS["VALID"], stats["valid"], stats["total"], STATUS_COLORS["VALID"])
    with cols[2]:
        stat_card(VALIDATION_LABELS["INVALID"], stats["invalid"], stats["total"], STATUS_COLORS["INVALID"])
    with cols[3]:
        stat_card(VALIDATION_LABELS["UNVALIDATED"], stats["unvalidated"], stats["total"], STATUS_COLORS["UNVALIDATED"])

    st.divider()
    st.subheader("Records")
    if filtered:
        df = records_to_frame(filtered)
        st.dataframe(
            df[["customer_id", "customer_name", "unit", "officer_name", "period",
                "validation_status", "tariff_class", "capacity_va", "date"]],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No records match the current filters.")

# ===========================================================================
# PAGE: Units & Officers
# ===========================================================================
elif page == "Units & Officers":
    st.title("Units & Officers")
    mode = st.radio("Summary", ["Validation count", "Invoice"], horizontal=True)
    summary_mode = SummaryMode.COUNT if mode == "Validation count" else SummaryMode.BILLING

    by_unit = summary_frame(aggregate_by(filtered, GroupBy.UNIT, summary_mode))
    by_officer = summary_frame(aggregate_by(filtered, GroupBy.OFFICER, summary_mode))

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Per Unit")
        if by_unit.empty:
            st.info("No data.")
        else:
            fig = go.Figure()
            if summary_mode is SummaryMode.COUNT:
                for status, column in [("VALID", "valid"), ("INVALID", "invalid"), ("UNVALIDATED", "unvalidated")]:
                    fig.add_trace(go.Bar(
                        x=by_unit["key"], y=by_unit[column],
                        name=VALIDATION_LABELS[status], marker_color=STATUS_COLORS[status],
                    ))
                fig.update_layout(barmode="stack")
            else:
                fig.add_trace(go.Bar(x=by_unit["key"], y=by_unit["total_work_orders"], name="Target", marker_color="#cbd5e1"))
                fig.add_trace(go.Bar(x=by_unit["key"], y=by_unit["realized"], name="Realized", marker_color="#6366f1"))
                fig.update_layout(barmode="group")
            fig.update_layout(height=380, margin=dict(t=20, b=20))
            st.plotly_chart(fig, use_container_width=True)
            st.dataframe(by_unit, use_container_width=True, hide_index=True)

    with col2:
        st.subheader("Per Officer")
        if by_officer.empty:
            st.info("No data.")
        else:
            st.dataframe(by_officer, use_container_width=True, hide_index=True)

# ===========================================================================
# PAGE: Map
# ===========================================================================
elif page == "Map":
    st.title("Customer Locations")
    selected_id = st.text_input("Locate IDPEL").strip().upper() or None
    points = mappable_records(filtered, selected_id)
    st.caption(f"{len(points):,} records with coordinates")

    if not points:
        st.warning("No records with coordinates for the current filters.")
    else:
        df = records_to_frame(points)
        fig = px.scatter_map(
            df,
            lat="latitude",
            lon="longitude",
            color="validation_status",
            color_discrete_map=STATUS_COLORS,
            hover_name="customer_name",
            hover_data=["customer_id", "unit", "officer_name", "meter_number"],
            zoom=13 if selected_id else 9,
            height=620,
        )
        fig.update_layout(margin=dict(t=0, b=0, l=0, r=0))
        st.plotly_chart(fig, use_container_width=True)

# ===========================================================================
# PAGE: Daily Realization
# ===========================================================================
elif page == "Daily Realization":
    st.title("Daily Realization")
    officer = st.selectbox("Officer", [""] + options["officers"], format_func=lambda o: o or "All units")
    daily = daily_realization(filtered, officer=officer or None)

    if daily.empty:
        st.warning("No dated records for the current filters.")
    else:
        totals = daily.groupby("series")[["realized", "target"]].sum()
        col1, col2, col3 = st.columns(3)
        with col1:
            st.metric("Total Realized", f"Rp {totals['realized'].sum():,.0f}")
        with col2:
            st.metric("Total Target", f"Rp {totals['target'].sum():,.0f}")
        with col3:
            target = totals["target"].sum()
            rate = totals["realized"].sum() / target * 100 if target else 0.0
            st.metric("Realization Rate", f"{rate:.1f}%")

        fig = go.Figure()
        for series, points in daily.groupby("series", sort=False):
            color = UNIT_COLORS.get(series, UNIT_COLORS["DEFAULT"])
            fig.add_trace(go.Scatter(
                x=points["date"], y=points["realized"],
                mode="lines+markers", name=series, line=dict(color=color, width=2),
            ))
        fig.update_layout(
            xaxis_title="Date",
            yaxis_title="Realized (Rp)",
            xaxis=dict(type="category"),
            height=450,
            margin=dict(t=20, b=40),
        )
        st.plotly_chart(fig, use_container_width=True)

        table = daily.pivot(index="date", columns="series", values="realized")
        table = table.reindex(pd.unique(daily["date"]))
        st.dataframe(table, use_container_width=True)

# ===========================================================================
# PAGE: Admin
# ===========================================================================
elif page == "Admin":
    st.title("Data Administration")

    st.subheader("Connections")
    for source in service.sources:
        ok, message = source.ping()
        icon = "🟢" if ok else "🔴"
        st.markdown(f"{icon} **{source.name}** — {message}")

    if st.button("Clear cache"):
        service.cache.clear()
        st.success("Cache cleared. Data will be fetched again on the next refresh.")

    st.divider()
    st.subheader("Bulk Upload")
    uploaded = st.file_uploader("Survey export (.csv or .xlsx)", type=["csv", "txt", "xlsx", "xlsm"])
    if uploaded is not None:
        suffix = Path(uploaded.name).suffix
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            tmp.write(uploaded.getvalue())
            tmp_path = Path(tmp.name)
        try:
            assembled = records_from_file(tmp_path)
        except ParseError as exc:
            st.error(f"Could not read file: {exc}")
            assembled = None
        finally:
            tmp_path.unlink(missing_ok=True)

        if assembled is not None:
            st.caption(f"{len(assembled.records):,} rows ready, {assembled.rejected} skipped without IDPEL")
            if assembled.records and st.button("Upload to database"):
                with st.spinner("Uploading..."):
                    outcome = service.upload_batch(assembled.records, settings.table)
                if outcome.success:
                    st.success(
                        f"Uploaded {outcome.applied_count:,} records in {outcome.total_chunks} chunks "
                        f"({outcome.duplicates_dropped} duplicates merged)."
                    )
                    service.fetch_dataset(settings.table, force_refresh=True)
                elif outcome.failed_chunk is None:
                    st.error(outcome.error_detail)
                else:
                    st.error(
                        f"Upload stopped at chunk {outcome.failed_chunk} of {outcome.total_chunks}: "
                        f"{outcome.error_detail}"
                    )
