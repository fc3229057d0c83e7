from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from core.charts import arc_chart, to_vega_spec
from core.filters import DashboardFilters
from core.records import DEFAULT_FIELDS, RecordFields, crop_key, split_crops


def compute_crop_frequency(filtered: pd.DataFrame, top_n: int = 10, fields: RecordFields = DEFAULT_FIELDS) -> pd.DataFrame:
    """Crop tag occurrences, trimmed and grouped case-insensitively.

    The label is the first spelling seen, so ``"Wheat, Rice , wheat"`` gives
    ``Wheat: 2, Rice: 1``.
    """
    cols = ["crop", "count"]
    if filtered.empty or fields.crops not in filtered.columns:
        return pd.DataFrame(columns=cols)

    labels: Dict[str, str] = {}
    counts: Dict[str, int] = {}
    for value in filtered[fields.crops].tolist():
        for tag in split_crops(value):
            key = crop_key(tag)
            labels.setdefault(key, tag)
            counts[key] = counts.get(key, 0) + 1

    out = pd.DataFrame([{"crop": labels[k], "count": n} for k, n in counts.items()], columns=cols)
    return out.sort_values("count", ascending=False, kind="mergesort").head(max(1, int(top_n))).reset_index(drop=True)


def compute_crops(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    filtered: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    fields: RecordFields = ctx.get("fields", DEFAULT_FIELDS)
    crops = compute_crop_frequency(filtered, filters.crop_top_n, fields)

    charts: Dict[str, Any] = {}
    if not crops.empty:
        charts["crop_distribution"] = to_vega_spec(arc_chart(crops, "crop", "count", donut=False))
    return {"filters": asdict(filters), "crops": crops.to_dict(orient="records"), "charts": charts}
