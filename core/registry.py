"""One-time cashback eligibility.

The registry is a fact about the full, unfiltered purchase history. It is
rebuilt only on a fresh data load and is read (never recomputed) by the
filter-dependent metrics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

import pandas as pd

from core.catalog import CASHBACK_THRESHOLD, DEFAULT_CATALOG, ProductCatalog
from core.records import (
    DEFAULT_FIELDS,
    STATUS_VERIFIED,
    LineItems,
    RecordFields,
    cell_text,
    ensure_annotated,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CashbackAward:
    farmer_id: str
    order_id: str
    award_date: pd.Timestamp
    purchase_value: float
    cashback: float
    line_items: LineItems

    def product_cashback(self, catalog: ProductCatalog) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for product, quantity in self.line_items:
            if product in catalog:
                out[product] = out.get(product, 0.0) + catalog[product].cashback_per_unit * quantity
        return out


class EligibilityRegistry:
    def __init__(
        self,
        catalog: ProductCatalog = DEFAULT_CATALOG,
        threshold: float = CASHBACK_THRESHOLD,
        fields: RecordFields = DEFAULT_FIELDS,
    ):
        self.catalog = catalog
        self.threshold = float(threshold)
        self.fields = fields
        self._awards: Dict[str, CashbackAward] = {}

    def rebuild(self, records: pd.DataFrame) -> "EligibilityRegistry":
        """Replace all awards from ``records`` (the whole dataset, never a filtered view).

        Records are walked oldest first; equal dates keep input order. The
        first Verified record per farmer whose purchase value reaches the
        threshold earns that farmer's only award.
        """
        awards: Dict[str, CashbackAward] = {}
        if records is not None and not records.empty:
            df = ensure_annotated(records, self.catalog, self.fields)
            ordered = df.sort_values("entry_date", kind="mergesort")
            order_col = self.fields.order_id if self.fields.order_id in ordered.columns else None
            for row in ordered.to_dict(orient="records"):
                if cell_text(row.get(self.fields.status)) != STATUS_VERIFIED:
                    continue
                farmer = row["farmer_id"]
                if not farmer or farmer in awards:
                    continue
                if float(row["purchase_value"]) < self.threshold:
                    continue
                order_id = cell_text(row.get(order_col)) if order_col else ""
                awards[farmer] = CashbackAward(
                    farmer_id=farmer,
                    order_id=order_id or str(row["row_id"]),
                    award_date=row["entry_date"],
                    purchase_value=float(row["purchase_value"]),
                    cashback=float(row["cashback_value"]),
                    line_items=tuple(row["line_items"]),
                )
        self._awards = awards
        logger.info("Eligibility registry rebuilt: %d awards, total cashback %.0f", len(awards), self.total_cashback())
        return self

    @property
    def awards(self) -> Mapping[str, CashbackAward]:
        return MappingProxyType(self._awards)

    def get(self, farmer_id: str) -> Optional[CashbackAward]:
        return self._awards.get(farmer_id)

    def __contains__(self, farmer_id: object) -> bool:
        return farmer_id in self._awards

    def __len__(self) -> int:
        return len(self._awards)

    def __iter__(self) -> Iterator[str]:
        return iter(self._awards)

    def total_cashback(self) -> float:
        return float(sum(a.cashback for a in self._awards.values()))

    def awards_in(self, farmer_ids: Iterable[str]) -> Tuple[CashbackAward, ...]:
        """Awards whose farmer is in ``farmer_ids``, in registry order."""
        visible = set(farmer_ids)
        return tuple(a for farmer, a in self._awards.items() if farmer in visible)

    def winners_in(self, farmer_ids: Iterable[str]) -> int:
        return len(self.awards_in(farmer_ids))

    def cashback_in(self, farmer_ids: Iterable[str]) -> float:
        return float(sum(a.cashback for a in self.awards_in(farmer_ids)))

    def to_frame(self) -> pd.DataFrame:
        cols = ["farmer_id", "order_id", "award_date", "purchase_value", "cashback", "products"]
        if not self._awards:
            return pd.DataFrame(columns=cols)
        return pd.DataFrame(
            [
                {
                    "farmer_id": a.farmer_id,
                    "order_id": a.order_id,
                    "award_date": a.award_date,
                    "purchase_value": a.purchase_value,
                    "cashback": a.cashback,
                    "products": ", ".join(f"{p} x{q}" for p, q in a.line_items),
                }
                for a in self._awards.values()
            ],
            columns=cols,
        )


def build_registry(
    records: pd.DataFrame,
    catalog: ProductCatalog = DEFAULT_CATALOG,
    threshold: float = CASHBACK_THRESHOLD,
    fields: RecordFields = DEFAULT_FIELDS,
) -> EligibilityRegistry:
    return EligibilityRegistry(catalog, threshold, fields).rebuild(records)
