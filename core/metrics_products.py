from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

import pandas as pd

from core.catalog import DEFAULT_CATALOG, ProductCatalog
from core.charts import arc_chart, bar_chart, to_vega_spec
from core.data import farmer_ids
from core.filters import DashboardFilters
from core.records import DEFAULT_FIELDS, RecordFields, ensure_annotated
from core.registry import EligibilityRegistry


BUDGET_COLUMNS = [
    "product",
    "pack_size",
    "units_sold",
    "farmers",
    "budget",
    "consumed",
    "remaining",
    "progress_pct",
    "over_budget",
]


def compute_units_sold(
    filtered: pd.DataFrame,
    catalog: ProductCatalog = DEFAULT_CATALOG,
    fields: RecordFields = DEFAULT_FIELDS,
) -> pd.DataFrame:
    """Units and distinct buyers per catalog product, regardless of eligibility."""
    units = {name: 0 for name in catalog.names}
    buyers = {name: set() for name in catalog.names}
    if not filtered.empty:
        df = ensure_annotated(filtered, catalog, fields)
        for farmer, items in zip(df["farmer_id"].tolist(), df["line_items"].tolist()):
            for product, quantity in items:
                units[product] = units.get(product, 0) + int(quantity)
                if farmer:
                    buyers.setdefault(product, set()).add(farmer)
    return pd.DataFrame(
        {
            "product": list(units),
            "units_sold": [units[p] for p in units],
            "farmers": [len(buyers.get(p, ())) for p in units],
        }
    )


def compute_budget_consumption(
    filtered: pd.DataFrame,
    registry: Optional[EligibilityRegistry],
    catalog: ProductCatalog = DEFAULT_CATALOG,
    fields: RecordFields = DEFAULT_FIELDS,
) -> pd.DataFrame:
    """Per-product budget use attributed from the awards of farmers in view.

    Consumption comes from each award's stored line items, not from visible
    rows. Remaining and progress are clamped for display; ``over_budget``
    flags the clamp.
    """
    consumed = {name: 0.0 for name in catalog.names}
    if not filtered.empty:
        filtered = ensure_annotated(filtered, catalog, fields)
    if registry is not None:
        for award in registry.awards_in(farmer_ids(filtered)):
            for product, amount in award.product_cashback(catalog).items():
                consumed[product] = consumed.get(product, 0.0) + amount

    sold = compute_units_sold(filtered, catalog, fields).set_index("product")
    rows = []
    for p in catalog:
        used = consumed.get(p.name, 0.0)
        progress = min(100.0, used / p.budget * 100.0) if p.budget > 0 else (100.0 if used > 0 else 0.0)
        rows.append(
            {
                "product": p.name,
                "pack_size": p.pack_size,
                "units_sold": int(sold.at[p.name, "units_sold"]) if p.name in sold.index else 0,
                "farmers": int(sold.at[p.name, "farmers"]) if p.name in sold.index else 0,
                "budget": float(p.budget),
                "consumed": float(used),
                "remaining": max(0.0, float(p.budget) - used),
                "progress_pct": progress,
                "over_budget": used > p.budget,
            }
        )
    return pd.DataFrame(rows, columns=BUDGET_COLUMNS)


def compute_products(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    filtered: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    registry: Optional[EligibilityRegistry] = ctx.get("registry")
    catalog: ProductCatalog = ctx.get("catalog", DEFAULT_CATALOG)
    fields: RecordFields = ctx.get("fields", DEFAULT_FIELDS)

    budget = compute_budget_consumption(filtered, registry, catalog, fields)
    totals = {
        "budget": float(budget["budget"].sum()),
        "consumed": float(budget["consumed"].sum()),
        "remaining": float(budget["remaining"].sum()),
        "units_sold": int(budget["units_sold"].sum()),
    }

    charts: Dict[str, Any] = {}
    if not budget.empty:
        charts["units_by_product"] = to_vega_spec(bar_chart(budget, "product", "units_sold", title="Units Ordered"))
        cashback = budget[budget["consumed"] > 0]
        if not cashback.empty:
            charts["cashback_by_product"] = to_vega_spec(arc_chart(cashback, "product", "consumed", value_format=",.0f"))

    return {
        "filters": asdict(filters),
        "budget_table": budget.to_dict(orient="records"),
        "totals": totals,
        "charts": charts,
    }
