from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

import altair as alt
import pandas as pd

from core.charts import to_vega_spec
from core.filters import DashboardFilters
from core.records import DEFAULT_FIELDS, RecordFields, cell_text, ensure_annotated
from core.registry import EligibilityRegistry


def compute_district_rollup(
    filtered: pd.DataFrame,
    registry: Optional[EligibilityRegistry],
    fields: RecordFields = DEFAULT_FIELDS,
) -> pd.DataFrame:
    """Distinct farmers and award holders per district, most farmers first."""
    cols = ["district", "total_farmers", "cashback_winners"]
    if filtered.empty or fields.district not in filtered.columns:
        return pd.DataFrame(columns=cols)

    df = ensure_annotated(filtered, fields=fields)
    farmers: Dict[str, set] = {}
    for district, farmer in zip(df[fields.district].map(cell_text).tolist(), df["farmer_id"].tolist()):
        if not district:
            continue
        bucket = farmers.setdefault(district, set())
        if farmer:
            bucket.add(farmer)

    rows = [
        {
            "district": district,
            "total_farmers": len(members),
            "cashback_winners": sum(1 for f in members if registry is not None and f in registry),
        }
        for district, members in farmers.items()
    ]
    out = pd.DataFrame(rows, columns=cols)
    return out.sort_values("total_farmers", ascending=False, kind="mergesort").reset_index(drop=True)


def compute_districts(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    filtered: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    fields: RecordFields = ctx.get("fields", DEFAULT_FIELDS)
    rollup = compute_district_rollup(filtered, ctx.get("registry"), fields)

    charts: Dict[str, Any] = {}
    if not rollup.empty:
        long_df = rollup.melt(
            id_vars="district",
            value_vars=["total_farmers", "cashback_winners"],
            var_name="metric",
            value_name="farmers",
        )
        hover = alt.selection_point(fields=["metric"], on="mouseover", empty="all")
        bars = (
            alt.Chart(long_df)
            .mark_bar()
            .encode(
                y=alt.Y("district:N", title=None, sort=rollup["district"].tolist()),
                x=alt.X("farmers:Q", title="Farmers", axis=alt.Axis(gridDash=[4, 4])),
                yOffset="metric:N",
                color=alt.Color("metric:N", title="Metric"),
                opacity=alt.condition(hover, alt.value(1), alt.value(0.3)),
                tooltip=["district", "metric", alt.Tooltip("farmers:Q", format=",")],
            )
            .add_params(hover)
        )
        charts["district_farmers"] = to_vega_spec(bars)

    return {"filters": asdict(filters), "districts": rollup.to_dict(orient="records"), "charts": charts}
