from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import altair as alt
import pandas as pd

from core.charts import to_vega_spec
from core.filters import DashboardFilters
from core.records import DEFAULT_FIELDS, RecordFields, cell_text, ensure_annotated


def compute_top_retailers(filtered: pd.DataFrame, top_n: int = 10, fields: RecordFields = DEFAULT_FIELDS) -> pd.DataFrame:
    """Rows (orders) and distinct farmers per retailer; rows missing a name or RIN are skipped."""
    cols = ["rank", "retailer", "orders", "farmers"]
    if filtered.empty or fields.retailer not in filtered.columns or fields.retailer_id not in filtered.columns:
        return pd.DataFrame(columns=cols)

    df = ensure_annotated(filtered, fields=fields)
    names = df[fields.retailer].map(cell_text)
    rins = df[fields.retailer_id].map(cell_text)
    keep = (names != "") & (rins != "")
    if not keep.any():
        return pd.DataFrame(columns=cols)

    scoped = pd.DataFrame({"retailer": names[keep], "farmer_id": df.loc[keep, "farmer_id"]})
    grouped = (
        scoped.groupby("retailer", sort=False)
        .agg(orders=("farmer_id", "size"), farmers=("farmer_id", lambda s: s[s != ""].nunique()))
        .reset_index()
        .sort_values("orders", ascending=False, kind="mergesort")
        .head(max(1, int(top_n)))
        .reset_index(drop=True)
    )
    grouped.insert(0, "rank", grouped.index + 1)
    return grouped[cols]


def compute_retailers(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    filtered: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    fields: RecordFields = ctx.get("fields", DEFAULT_FIELDS)
    top = compute_top_retailers(filtered, filters.top_n, fields)

    charts: Dict[str, Any] = {}
    if not top.empty:
        bar = (
            alt.Chart(top)
            .mark_bar(color="#667eea")
            .encode(
                x=alt.X("orders:Q", title="Total Orders", axis=alt.Axis(gridDash=[4, 4])),
                y=alt.Y("retailer:N", title=None, sort="-x"),
                tooltip=[
                    alt.Tooltip("retailer:N", title="Retailer"),
                    alt.Tooltip("orders:Q", title="Orders", format=","),
                    alt.Tooltip("farmers:Q", title="Unique Farmers", format=","),
                ],
            )
            .properties(height=320)
        )
        charts["top_retailers"] = to_vega_spec(bar)

    return {"filters": asdict(filters), "top": top.to_dict(orient="records"), "charts": charts}
