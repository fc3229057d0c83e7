from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from core.catalog import DEFAULT_CATALOG, ProductCatalog
from core.data import TOTAL_RETAILERS_DEFAULT, farmer_ids
from core.filters import DashboardFilters
from core.records import DEFAULT_FIELDS, STATUSES, RecordFields, cell_text, ensure_annotated
from core.registry import EligibilityRegistry


def compute_status_counts(filtered: pd.DataFrame, fields: RecordFields = DEFAULT_FIELDS) -> Dict[str, int]:
    counts = {status: 0 for status in STATUSES}
    if filtered.empty or fields.status not in filtered.columns:
        return counts
    observed = filtered[fields.status].map(cell_text).value_counts()
    for status in STATUSES:
        counts[status] = int(observed.get(status, 0))
    return counts


def compute_cashback_kpis(filtered: pd.DataFrame, registry: Optional[EligibilityRegistry]) -> Dict[str, Any]:
    """Winners and cashback in view.

    Walks the registry and tests farmer membership in the view. A farmer counts
    when any of their rows is visible, even if the row that earned the award
    is filtered out.
    """
    if registry is None:
        return {"cashback_winners": 0, "total_cashback": 0.0}
    if not filtered.empty:
        filtered = ensure_annotated(filtered, registry.catalog, registry.fields)
    visible = farmer_ids(filtered)
    awards = registry.awards_in(visible)
    return {
        "cashback_winners": len(awards),
        "total_cashback": float(sum(a.cashback for a in awards)),
    }


def compute_disbursement_kpis(
    disbursements: Optional[pd.DataFrame],
    visible_farmers: Iterable[str],
    is_filtered: bool,
) -> Optional[Dict[str, Any]]:
    """Externally reported payouts; ``None`` when no table was supplied."""
    if disbursements is None or disbursements.empty or not {"recipient", "amount"}.issubset(disbursements.columns):
        return None
    df = disbursements
    if is_filtered:
        df = df[df["recipient"].isin(set(visible_farmers))]
    return {
        "total_amount": float(pd.to_numeric(df["amount"], errors="coerce").fillna(0).sum()),
        "recipients": int(df["recipient"].nunique()),
        "rows": int(len(df)),
    }


def compute_active_retailers(filtered: pd.DataFrame, fields: RecordFields = DEFAULT_FIELDS) -> int:
    if filtered.empty or fields.retailer_id not in filtered.columns:
        return 0
    rins = {cell_text(v) for v in filtered[fields.retailer_id].tolist()}
    return len({r for r in rins if r})


def compute_overview(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    filtered: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    registry: Optional[EligibilityRegistry] = ctx.get("registry")
    catalog: ProductCatalog = ctx.get("catalog", DEFAULT_CATALOG)
    fields: RecordFields = ctx.get("fields", DEFAULT_FIELDS)
    total_retailers = int(ctx.get("total_retailers", TOTAL_RETAILERS_DEFAULT) or 0)
    if not filtered.empty:
        filtered = ensure_annotated(filtered, catalog, fields)

    visible = farmer_ids(filtered)
    cashback = compute_cashback_kpis(filtered, registry)
    disbursed = compute_disbursement_kpis(ctx.get("disbursements"), visible, bool(ctx.get("is_filtered")))
    active_retailers = compute_active_retailers(filtered, fields)

    kpis: Dict[str, Any] = {
        "total_scans": int(len(filtered)),
        "unique_farmers": len(visible),
        "status_counts": compute_status_counts(filtered, fields),
        "cashback_winners": cashback["cashback_winners"],
        "total_cashback": cashback["total_cashback"],
        "registry_winners": cashback["cashback_winners"],
        "registry_cashback": cashback["total_cashback"],
        "cashback_source": "registry",
        "active_retailers": active_retailers,
        "total_retailers": total_retailers,
        "active_retailers_label": f"{active_retailers}/{total_retailers}",
    }
    if disbursed is not None:
        kpis["cashback_winners"] = disbursed["recipients"]
        kpis["total_cashback"] = disbursed["total_amount"]
        kpis["cashback_source"] = "disbursements"

    return {
        "filters": asdict(filters),
        "kpis": kpis,
        "disbursements": disbursed,
        "registry_size": len(registry) if registry is not None else 0,
    }
