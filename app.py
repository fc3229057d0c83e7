import altair as alt
import pandas as pd
import streamlit as st
from contextlib import contextmanager
from datetime import date
from typing import Dict, List, Optional

from core.data import DataLoadError, format_currency_0, format_currency_columns, load_dashboard_data, prepare_context, reload_dashboard_data
from core.filters import DashboardFilters, normalize_filters
from core.metrics_crops import compute_crop_frequency
from core.metrics_districts import compute_district_rollup
from core.metrics_overview import compute_overview
from core.metrics_products import compute_budget_consumption
from core.metrics_retailers import compute_top_retailers
from core.charts import arc_chart, bar_chart
from core.records import strip_derived

alt.data_transformers.disable_max_rows()
# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .district-card {border: 1px solid #e5e7eb;border-radius: 10px;padding: 10px 12px;margin-bottom: 8px;}
        .district-card h4 {margin: 0 0 6px 0;font-size: 0.95rem;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(f: DashboardFilters) -> str:
    chips = []
    if f.start_date or f.end_date:
        chips.append(f"Dates: {f.start_date or '…'} – {f.end_date or '…'}")
    else:
        chips.append("Dates: All")
    for label, values in [("District", f.districts), ("Crop", f.crops), ("Product", f.products), ("Retailer", f.retailers)]:
        chips.append(f"{label}: {', '.join(values)}" if values else f"{label}: All")
    if f.search:
        chips.append(f"Search: {f.search}")
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


# ---------- UI setup ----------
st.set_page_config(page_title="Yara Cashback Campaign Dashboard", layout="wide")
inject_base_styles()
st.title("Yara Cashback Campaign Dashboard")
st.caption("Farmer scans, verification status, one-time cashback awards and product budgets.")

try:
    data_ctx = load_dashboard_data()
except DataLoadError as exc:
    st.error(f"Error loading data. {exc}")
    st.stop()

records: pd.DataFrame = data_ctx["records"]
if records.empty:
    st.error("No purchase records found. Check the CSV file.")
    st.stop()

options: Dict[str, List[str]] = data_ctx.get("options", {})

# ----- Sidebar: filters -----
with st.sidebar:
    st.markdown("### Filters")
    search = st.text_input("Search", "", help="Matches any column, case-insensitive.")
    date_cols = st.columns(2)
    start_date: Optional[date] = date_cols[0].date_input("Start date", value=None)
    end_date: Optional[date] = date_cols[1].date_input("End date", value=None)
    districts = st.multiselect("District", options=options.get("districts", []), default=[])
    crops = st.multiselect("Crop", options=options.get("crops", []), default=[])
    products = st.multiselect("Product", options=options.get("products", []), default=[])
    retailers = st.multiselect("Retailer", options=options.get("retailers", []), default=[])

    st.markdown("---")
    with st.expander("Advanced settings", expanded=False):
        top_n = st.slider("Top retailers", min_value=5, max_value=50, value=10, step=5)
        crop_top_n = st.slider("Top crops", min_value=5, max_value=20, value=10, step=1)
    if st.button("Reload data", help="Re-read the CSV files and rebuild cashback eligibility."):
        reload_dashboard_data()
        st.rerun()

filters = normalize_filters(
    {
        "search": search,
        "start_date": start_date,
        "end_date": end_date,
        "districts": districts,
        "crops": crops,
        "products": products,
        "retailers": retailers,
        "top_n": top_n,
        "crop_top_n": crop_top_n,
    }
)
ctx = prepare_context(filters, data_ctx)
filtered: pd.DataFrame = ctx["filtered"]
registry = ctx["registry"]
catalog = ctx["catalog"]
fields = ctx["fields"]


def render_header():
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            "<div class='app-top-bar'><div class='breadcrumb'>Home / Campaign</div><div class='page-title'>Overview</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        export_df = strip_derived(filtered)
        st.download_button(
            "Export CSV",
            data=export_df.to_csv(index=False).encode("utf-8"),
            file_name=f"yara_dashboard_export_{date.today().isoformat()}.csv",
            mime="text/csv",
            disabled=export_df.empty,
        )
    st.markdown(f"<div class='chip-row'>{format_filter_summary(filters)}</div>", unsafe_allow_html=True)


def render_kpi_tiles():
    kpis = compute_overview(filters, ctx)["kpis"]
    status = kpis["status_counts"]
    row1 = st.columns(4)
    row1[0].metric("Total Scans", f"{kpis['total_scans']:,}")
    row1[1].metric("Unique Farmers", f"{kpis['unique_farmers']:,}")
    row1[2].metric("Active Retailers", kpis["active_retailers_label"])
    row1[3].metric(
        "Cashback Winners",
        f"{kpis['cashback_winners']:,}",
        help="Farmers holding their one-time award. Counted when any of their rows is in view.",
    )
    row2 = st.columns(4)
    row2[0].metric("Pending", f"{status.get('Pending', 0):,}")
    row2[1].metric("Verified", f"{status.get('Verified', 0):,}")
    row2[2].metric("Rejected", f"{status.get('Rejected', 0):,}")
    row2[3].metric(
        "Total Cashback",
        format_currency_0(kpis["total_cashback"]),
        help="From the disbursement file when present, otherwise from computed awards.",
    )
    if kpis["cashback_source"] == "disbursements":
        st.caption(
            f"Cashback from disbursement records. Computed awards in view: "
            f"{kpis['registry_winners']:,} farmers, {format_currency_0(kpis['registry_cashback'])}."
        )


def render_product_charts(budget: pd.DataFrame):
    cols = st.columns(2)
    with cols[0]:
        with card("Units Ordered by Product"):
            st.altair_chart(bar_chart(budget, "product", "units_sold", title="Units Ordered"), use_container_width=True)
    with cols[1]:
        with card("Cashback by Product"):
            consumed = budget[budget["consumed"] > 0]
            if consumed.empty:
                st.info("No cashback awards for farmers in view.")
            else:
                st.altair_chart(arc_chart(consumed, "product", "consumed", value_format=",.0f"), use_container_width=True)


def render_budget_table(budget: pd.DataFrame):
    with card("Budget Consumption"):
        table = budget.rename(
            columns={
                "product": "Product",
                "pack_size": "Pack",
                "units_sold": "Bags Sold",
                "farmers": "Farmers",
                "budget": "Budget",
                "consumed": "Consumed",
                "remaining": "Remaining",
                "progress_pct": "Progress",
            }
        ).drop(columns=["over_budget"])
        table = format_currency_columns(table, ["Budget", "Consumed", "Remaining"])
        st.dataframe(
            table,
            hide_index=True,
            use_container_width=True,
            column_config={
                "Progress": st.column_config.ProgressColumn("Progress", format="%.1f%%", min_value=0, max_value=100),
            },
        )


def render_crops_and_retailers():
    cols = st.columns(2)
    with cols[0]:
        with card("Crop Distribution"):
            crop_df = compute_crop_frequency(filtered, filters.crop_top_n, fields)
            if crop_df.empty:
                st.info("No crops recorded for the selected filters.")
            else:
                st.altair_chart(arc_chart(crop_df, "crop", "count", donut=False), use_container_width=True)
    with cols[1]:
        with card("Top Retailers"):
            top = compute_top_retailers(filtered, filters.top_n, fields)
            if top.empty:
                st.info("No retailer activity for the selected filters.")
            else:
                st.altair_chart(
                    bar_chart(
                        top,
                        "retailer",
                        "orders",
                        title="Total Orders",
                        horizontal=True,
                        tooltip=[
                            alt.Tooltip("retailer:N", title="Retailer"),
                            alt.Tooltip("orders:Q", title="Orders"),
                            alt.Tooltip("farmers:Q", title="Unique Farmers"),
                        ],
                    ),
                    use_container_width=True,
                )


def render_awards():
    with st.expander(f"Cashback awards ({len(registry):,})", expanded=False):
        awards = registry.to_frame()
        if awards.empty:
            st.info("No farmer has reached the cashback threshold yet.")
            return
        visible = set(filtered["farmer_id"]) if "farmer_id" in filtered.columns else set()
        awards.insert(1, "in_view", awards["farmer_id"].isin(visible))
        awards["award_date"] = awards["award_date"].dt.date
        st.dataframe(format_currency_columns(awards, ["purchase_value", "cashback"]), hide_index=True, use_container_width=True)


def render_districts():
    with card("Districts"):
        rollup = compute_district_rollup(filtered, registry, fields)
        if rollup.empty:
            st.info("No districts for the selected filters.")
            return
        grid = st.columns(4)
        for idx, row in enumerate(rollup.to_dict(orient="records")):
            grid[idx % 4].markdown(
                f"<div class='district-card'><h4>{row['district']}</h4>"
                f"Total Farmers: <strong>{row['total_farmers']}</strong><br/>"
                f"Cashback Winners: <strong>{row['cashback_winners']}</strong></div>",
                unsafe_allow_html=True,
            )


render_header()
with card("KPI Tiles"):
    render_kpi_tiles()

budget_df = compute_budget_consumption(filtered, registry, catalog, fields)
render_product_charts(budget_df)
render_budget_table(budget_df)
render_crops_and_retailers()
render_districts()
render_awards()
st.caption("Replace the CSV next to app.py and press Reload data to rebuild cashback eligibility.")
