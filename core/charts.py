from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

PALETTE = ["#3498db", "#2ecc71", "#9b59b6", "#f1c40f", "#e74c3c", "#34495e", "#1abc9c", "#e67e22", "#95a5a6", "#c0392b"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def bar_chart(
    df: pd.DataFrame,
    category: str,
    value: str,
    *,
    title: str,
    horizontal: bool = False,
    value_format: str = ",",
    tooltip: Optional[List[Any]] = None,
) -> alt.Chart:
    cat_enc = alt.X(f"{category}:N", title=None, sort=None) if not horizontal else alt.Y(f"{category}:N", title=None, sort="-x")
    val_enc = (
        alt.Y(f"{value}:Q", title=title, axis=alt.Axis(format="~s", gridDash=[4, 4]))
        if not horizontal
        else alt.X(f"{value}:Q", title=title, axis=alt.Axis(format="~s", gridDash=[4, 4]))
    )
    enc = {"x": cat_enc, "y": val_enc} if not horizontal else {"x": val_enc, "y": cat_enc}
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            **enc,
            color=alt.Color(f"{category}:N", legend=None, scale=alt.Scale(range=PALETTE)),
            tooltip=tooltip or [alt.Tooltip(f"{category}:N"), alt.Tooltip(f"{value}:Q", format=value_format)],
        )
        .properties(height=280)
    )


def arc_chart(df: pd.DataFrame, category: str, value: str, *, donut: bool = True, value_format: str = ",") -> alt.Chart:
    return (
        alt.Chart(df)
        .mark_arc(innerRadius=60 if donut else 0, stroke="#ffffff")
        .encode(
            theta=alt.Theta(f"{value}:Q"),
            color=alt.Color(f"{category}:N", scale=alt.Scale(range=PALETTE), legend=alt.Legend(orient="bottom")),
            tooltip=[alt.Tooltip(f"{category}:N"), alt.Tooltip(f"{value}:Q", format=value_format)],
        )
        .properties(height=280)
    )
