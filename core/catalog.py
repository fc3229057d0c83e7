from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

import pandas as pd


CASHBACK_THRESHOLD = 10000.0

CATALOG_COLUMNS = {
    "product": "name",
    "product name": "name",
    "name": "name",
    "pack_size": "pack_size",
    "pack size": "pack_size",
    "price_per_unit": "price_per_unit",
    "price": "price_per_unit",
    "cashback_per_unit": "cashback_per_unit",
    "cashback": "cashback_per_unit",
    "budget": "budget",
}


@dataclass(frozen=True)
class Product:
    name: str
    price_per_unit: float
    cashback_per_unit: float
    budget: float
    pack_size: str = ""


class ProductCatalog:
    """Ordered product reference data.

    Declaration order is match priority: ``resolve`` returns the first product
    whose name is contained in the raw text, so a name that is a substring of
    another (``"YaraVita Zintrac"`` vs ``"YaraVita Zintrac 700"``) only wins
    when declared first.
    """

    def __init__(self, products: Iterable[Product]):
        self._products: Dict[str, Product] = {}
        for p in products:
            if p.name in self._products:
                raise ValueError(f"Duplicate catalog product: {p.name}")
            self._products[p.name] = p

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products.values())

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, name: object) -> bool:
        return name in self._products

    def __getitem__(self, name: str) -> Product:
        return self._products[name]

    @property
    def names(self) -> List[str]:
        return list(self._products)

    def resolve(self, raw: object) -> Optional[str]:
        if raw is None:
            return None
        text = str(raw)
        if not text:
            return None
        for name in self._products:
            if name in text:
                return name
        return None


DEFAULT_CATALOG = ProductCatalog(
    [
        Product("YaraMila Complex", price_per_unit=2400, cashback_per_unit=40, budget=75000, pack_size="25 Kg"),
        Product("YaraLiva Nitrabor", price_per_unit=1600, cashback_per_unit=25, budget=50000, pack_size="25 Kg"),
        Product("YaraVita Seniphos", price_per_unit=850, cashback_per_unit=20, budget=35000, pack_size="500 ML"),
        Product("YaraVita Bortrac", price_per_unit=500, cashback_per_unit=10, budget=15000, pack_size="250 ML"),
        Product("YaraVita Zintrac 700", price_per_unit=450, cashback_per_unit=10, budget=25000, pack_size="250 ML"),
    ]
)


def load_catalog(path: Path) -> ProductCatalog:
    """Read a catalog CSV; row order becomes match priority."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df = df.rename(columns={c: CATALOG_COLUMNS.get(c.strip().lower(), c) for c in df.columns})
    missing = {"name", "price_per_unit", "cashback_per_unit", "budget"} - set(df.columns)
    if missing:
        raise ValueError(f"Catalog {path} missing columns: {sorted(missing)}")
    for col in ["price_per_unit", "cashback_per_unit", "budget"]:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)
    if "pack_size" not in df.columns:
        df["pack_size"] = ""

    products = []
    for row in df.to_dict(orient="records"):
        name = str(row["name"]).strip()
        if not name:
            continue
        products.append(
            Product(
                name=name,
                price_per_unit=float(row["price_per_unit"]),
                cashback_per_unit=float(row["cashback_per_unit"]),
                budget=float(row["budget"]),
                pack_size=str(row["pack_size"]).strip(),
            )
        )
    return ProductCatalog(products)
