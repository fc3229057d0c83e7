from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from core.catalog import DEFAULT_CATALOG, ProductCatalog
from core.filters import DashboardFilters
from core.records import DEFAULT_FIELDS, EPOCH, STATUSES, RecordFields, cell_text, resolve_product_identity, resolve_quantity


def compute_debug(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    records: pd.DataFrame = ctx.get("records", pd.DataFrame())
    catalog: ProductCatalog = ctx.get("catalog", DEFAULT_CATALOG)
    fields: RecordFields = ctx.get("fields", DEFAULT_FIELDS)
    registry = ctx.get("registry")
    disbursements: pd.DataFrame = ctx.get("disbursements", pd.DataFrame())

    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "row_counts": {
            "records": int(len(records)),
            "filtered": int(len(ctx.get("filtered", pd.DataFrame()))),
            "awards": len(registry) if registry is not None else 0,
            "disbursements": int(len(disbursements)),
        },
        "cleaning_checks": {
            "epoch_dates": 0,
            "dropped_line_slots": 0,
            "blank_farmer_rows": 0,
        },
        "unresolved_products": [],
        "unknown_statuses": [],
        "missing_columns": [],
    }
    if records.empty:
        return payload

    expected = [fields.farmer, fields.status, fields.entry_date, fields.district, fields.retailer, fields.crops]
    expected += [fields.product_field(i) for i in range(1, fields.slots + 1)]
    payload["missing_columns"] = [c for c in expected if c not in records.columns]

    if "entry_date" in records.columns:
        payload["cleaning_checks"]["epoch_dates"] = int((records["entry_date"] == EPOCH).sum())
    if "farmer_id" in records.columns:
        payload["cleaning_checks"]["blank_farmer_rows"] = int((records["farmer_id"] == "").sum())

    unresolved: Dict[str, int] = {}
    dropped = 0
    for row in records.to_dict(orient="records"):
        for slot in range(1, fields.slots + 1):
            raw = cell_text(row.get(fields.product_field(slot)))
            if not raw:
                continue
            if resolve_product_identity(raw, catalog) is None:
                unresolved[raw] = unresolved.get(raw, 0) + 1
            elif resolve_quantity(row.get(fields.quantity_field(slot))) <= 0:
                dropped += 1
    payload["cleaning_checks"]["dropped_line_slots"] = dropped
    payload["unresolved_products"] = [
        {"raw": raw, "count": n} for raw, n in sorted(unresolved.items(), key=lambda kv: -kv[1])[:20]
    ]

    if fields.status in records.columns:
        statuses = records[fields.status].map(cell_text).value_counts()
        payload["unknown_statuses"] = [
            {"status": str(s), "count": int(n)} for s, n in statuses.items() if s not in STATUSES
        ]
    return payload
