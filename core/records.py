"""Row normalization and transaction valuation.

Raw purchase rows arrive as loosely typed text. Everything here degrades to a
neutral value (``None`` / ``0`` / epoch) instead of raising, so a bad cell never
drops the row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

import pandas as pd

from core.catalog import DEFAULT_CATALOG, ProductCatalog


STATUS_PENDING = "Pending"
STATUS_VERIFIED = "Verified"
STATUS_REJECTED = "Rejected"
STATUSES = (STATUS_PENDING, STATUS_VERIFIED, STATUS_REJECTED)

EPOCH = pd.Timestamp("1970-01-01")

MONTHS = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

_DATE_SPLIT = re.compile(r"[-\s/:]+")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
# Keywords pandas resolves against the wall clock.
_RELATIVE_DATES = {"now", "today", "tomorrow", "yesterday"}

LineItems = Tuple[Tuple[str, int], ...]


@dataclass(frozen=True)
class RecordFields:
    farmer: str = "Farmer Mobile"
    status: str = "Approval Status"
    entry_date: str = "Date of Entry"
    district: str = "District"
    retailer: str = "Retailer Name"
    retailer_id: str = "RIN"
    crops: str = "Crops Selected"
    order_id: str = "Order ID"
    product_prefix: str = "Product Name"
    quantity_prefix: str = "Product Quantity"
    slots: int = 5

    def product_field(self, slot: int) -> str:
        return f"{self.product_prefix} {slot}"

    def quantity_field(self, slot: int) -> str:
        return f"{self.quantity_prefix} {slot}"


DEFAULT_FIELDS = RecordFields()

# Derived columns added by ``annotate_records``.
DERIVED_COLUMNS = ["row_id", "farmer_id", "entry_date", "line_items", "purchase_value", "cashback_value"]


@dataclass(frozen=True)
class TransactionTotals:
    purchase_value: float
    cashback_value: float
    line_items: LineItems = ()


def cell_text(value: object) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def resolve_product_identity(raw: object, catalog: ProductCatalog = DEFAULT_CATALOG) -> Optional[str]:
    return catalog.resolve(cell_text(raw))


def resolve_quantity(raw: object) -> int:
    """Leading-integer parse: ``"5 bags"`` -> 5, ``"2.9"`` -> 2, junk -> 0."""
    match = _LEADING_INT.match(cell_text(raw))
    if not match:
        return 0
    return int(match.group(1))


def _month_number(token: str) -> Optional[int]:
    if token.isdigit():
        month = int(token)
        return month if 1 <= month <= 12 else None
    lowered = token.lower()
    if len(lowered) < 3 or not lowered.isalpha():
        return None
    for idx, name in enumerate(MONTHS, start=1):
        if name.startswith(lowered):
            return idx
    return None


def _tokenized_date(text: str) -> Optional[pd.Timestamp]:
    parts = [p for p in _DATE_SPLIT.split(text) if p]
    if len(parts) < 3:
        return None
    day_tok, month_tok, year_tok = parts[0], parts[1], parts[2]
    if not day_tok.isdigit() or not year_tok.isdigit():
        return None
    month = _month_number(month_tok)
    if month is None:
        return None
    year = int(year_tok)
    if len(year_tok) <= 2:
        year += 2000
    if not 1900 <= year <= 2200:
        return None
    try:
        return pd.Timestamp(year=year, month=month, day=int(day_tok))
    except (ValueError, OverflowError):
        return None


def _generic_date(text: str) -> Optional[pd.Timestamp]:
    if text.strip().lower() in _RELATIVE_DATES:
        return None
    try:
        ts = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return pd.Timestamp(ts)


def resolve_date(raw: object) -> pd.Timestamp:
    """Day-month-year tokens first, then generic parsing, then the epoch."""
    text = cell_text(raw)
    if not text:
        return EPOCH
    parsed = _tokenized_date(text)
    if parsed is None:
        parsed = _generic_date(text)
    return parsed if parsed is not None else EPOCH


def has_usable_date(ts: pd.Timestamp) -> bool:
    return ts is not None and not pd.isna(ts) and ts != EPOCH


def extract_line_items(
    row: Mapping[str, Any],
    catalog: ProductCatalog = DEFAULT_CATALOG,
    fields: RecordFields = DEFAULT_FIELDS,
) -> LineItems:
    items: List[Tuple[str, int]] = []
    for slot in range(1, fields.slots + 1):
        product = resolve_product_identity(row.get(fields.product_field(slot)), catalog)
        quantity = resolve_quantity(row.get(fields.quantity_field(slot)))
        if product and quantity > 0:
            items.append((product, quantity))
    return tuple(items)


def compute_totals(
    row: Mapping[str, Any],
    catalog: ProductCatalog = DEFAULT_CATALOG,
    fields: RecordFields = DEFAULT_FIELDS,
) -> TransactionTotals:
    items = extract_line_items(row, catalog, fields)
    purchase = 0.0
    cashback = 0.0
    for product, quantity in items:
        p = catalog[product]
        purchase += p.price_per_unit * quantity
        cashback += p.cashback_per_unit * quantity
    return TransactionTotals(purchase_value=purchase, cashback_value=cashback, line_items=items)


def split_crops(value: object) -> List[str]:
    return [c.strip() for c in cell_text(value).split(",") if c.strip()]


def crop_key(tag: str) -> str:
    return tag.strip().casefold()


def annotate_records(
    df: pd.DataFrame,
    catalog: ProductCatalog = DEFAULT_CATALOG,
    fields: RecordFields = DEFAULT_FIELDS,
) -> pd.DataFrame:
    """Return a copy of ``df`` with the normalized columns in ``DERIVED_COLUMNS``."""
    out = df.copy()
    rows = out.to_dict(orient="records")
    totals = [compute_totals(r, catalog, fields) for r in rows]
    out["row_id"] = range(len(out))
    out["farmer_id"] = [cell_text(r.get(fields.farmer)) for r in rows]
    out["entry_date"] = pd.Series([resolve_date(r.get(fields.entry_date)) for r in rows], index=out.index, dtype="datetime64[ns]")
    out["line_items"] = pd.Series([t.line_items for t in totals], index=out.index, dtype=object)
    out["purchase_value"] = [t.purchase_value for t in totals]
    out["cashback_value"] = [t.cashback_value for t in totals]
    return out


def ensure_annotated(
    df: pd.DataFrame,
    catalog: ProductCatalog = DEFAULT_CATALOG,
    fields: RecordFields = DEFAULT_FIELDS,
) -> pd.DataFrame:
    if set(DERIVED_COLUMNS).issubset(df.columns):
        return df
    return annotate_records(df, catalog, fields)


def strip_derived(df: pd.DataFrame) -> pd.DataFrame:
    return df.drop(columns=DERIVED_COLUMNS, errors="ignore")
