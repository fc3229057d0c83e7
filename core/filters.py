from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

import pandas as pd

from core.catalog import DEFAULT_CATALOG, ProductCatalog
from core.records import (
    DEFAULT_FIELDS,
    DERIVED_COLUMNS,
    RecordFields,
    cell_text,
    crop_key,
    ensure_annotated,
    has_usable_date,
    resolve_product_identity,
    split_crops,
)


@dataclass(frozen=True)
class DashboardFilters:
    search: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    districts: List[str] = field(default_factory=list)
    crops: List[str] = field(default_factory=list)
    products: List[str] = field(default_factory=list)
    retailers: List[str] = field(default_factory=list)
    top_n: int = 10
    crop_top_n: int = 10

    @property
    def is_active(self) -> bool:
        return bool(
            self.search
            or self.start_date
            or self.end_date
            or self.districts
            or self.crops
            or self.products
            or self.retailers
        )


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    return [str(v) for v in values if v is not None and str(v) != ""]


def _as_date(value: object) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except Exception:
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.date()


def _as_bounded_int(value: object, default: int, lo: int = 1, hi: int = 50) -> int:
    try:
        out = int(value)
    except Exception:
        out = default
    return max(lo, min(hi, out))


def normalize_filters(raw: Optional[dict]) -> DashboardFilters:
    raw = raw or {}
    return DashboardFilters(
        search=(raw.get("search") or "").strip(),
        start_date=_as_date(raw.get("start_date")),
        end_date=_as_date(raw.get("end_date")),
        districts=_as_str_list(raw.get("districts")),
        crops=_as_str_list(raw.get("crops")),
        products=_as_str_list(raw.get("products")),
        retailers=_as_str_list(raw.get("retailers")),
        top_n=_as_bounded_int(raw.get("top_n", 10), 10),
        crop_top_n=_as_bounded_int(raw.get("crop_top_n", 10), 10),
    )


def _row_products(row: dict, catalog: ProductCatalog, fields: RecordFields) -> set:
    out = set()
    for slot in range(1, fields.slots + 1):
        name = resolve_product_identity(row.get(fields.product_field(slot)), catalog)
        if name:
            out.add(name)
    return out


def filter_records(
    records: pd.DataFrame,
    filters: DashboardFilters,
    catalog: ProductCatalog = DEFAULT_CATALOG,
    fields: RecordFields = DEFAULT_FIELDS,
) -> pd.DataFrame:
    """Rows matching every active criterion. Builds a new frame; ``records`` is untouched."""
    if records.empty or not filters.is_active:
        return records.copy()

    df = ensure_annotated(records, catalog, fields)
    mask = pd.Series(True, index=df.index)

    if filters.search:
        q = filters.search.lower()
        raw_cols = [c for c in df.columns if c not in DERIVED_COLUMNS]
        text = df[raw_cols].fillna("").astype(str).agg(" ".join, axis=1).str.lower()
        mask &= text.str.contains(q, regex=False)

    if filters.start_date or filters.end_date:
        usable = df["entry_date"].apply(has_usable_date)
        day = df["entry_date"].dt.normalize()
        in_range = pd.Series(True, index=df.index)
        if filters.start_date:
            in_range &= day >= pd.Timestamp(filters.start_date)
        if filters.end_date:
            in_range &= day <= pd.Timestamp(filters.end_date)
        mask &= in_range | ~usable

    if filters.districts and fields.district in df.columns:
        mask &= df[fields.district].map(cell_text).isin(set(filters.districts))
    elif filters.districts:
        mask &= False

    if filters.retailers and fields.retailer in df.columns:
        mask &= df[fields.retailer].map(cell_text).isin(set(filters.retailers))
    elif filters.retailers:
        mask &= False

    if filters.crops:
        wanted = {crop_key(c) for c in filters.crops}
        if fields.crops in df.columns:
            mask &= df[fields.crops].apply(lambda v: any(crop_key(c) in wanted for c in split_crops(v)))
        else:
            mask &= False

    if filters.products:
        wanted_products = set(filters.products)
        rows = df.to_dict(orient="records")
        has_product = [bool(_row_products(r, catalog, fields) & wanted_products) for r in rows]
        mask &= pd.Series(has_product, index=df.index, dtype=bool)

    return df[mask].copy()


def filter_options(
    records: pd.DataFrame,
    catalog: ProductCatalog = DEFAULT_CATALOG,
    fields: RecordFields = DEFAULT_FIELDS,
) -> Dict[str, List[str]]:
    """Distinct values for the filter dropdowns."""
    options: Dict[str, List[str]] = {"districts": [], "crops": [], "products": [], "retailers": []}
    if records.empty:
        return options

    for key, col in [("districts", fields.district), ("retailers", fields.retailer)]:
        if col in records.columns:
            values = {cell_text(v) for v in records[col].tolist()}
            options[key] = sorted(v for v in values if v)

    if fields.crops in records.columns:
        crops: Dict[str, str] = {}
        for value in records[fields.crops].tolist():
            for tag in split_crops(value):
                crops.setdefault(crop_key(tag), tag)
        options["crops"] = sorted(crops.values())

    products = set()
    for row in records.to_dict(orient="records"):
        products |= _row_products(row, catalog, fields)
    options["products"] = sorted(products)
    return options
