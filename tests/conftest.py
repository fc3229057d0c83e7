"""Pytest fixtures for testing"""

from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import pandas as pd
import pytest

from core.catalog import DEFAULT_CATALOG
from core.data import Settings, _load_dashboard_data_cached
from core.records import DEFAULT_FIELDS, annotate_records
from core.registry import build_registry


def make_row(
    farmer: str,
    status: str = "Verified",
    entry_date: str = "01-03-2024",
    products: Sequence[Tuple[str, object]] = (("YaraMila Complex 25 Kg", "5"),),
    district: str = "Nashik",
    retailer: str = "Agro One",
    rin: str = "RIN001",
    crops: str = "Wheat",
    order_id: Optional[str] = None,
) -> dict:
    row = {
        "Farmer Mobile": farmer,
        "Approval Status": status,
        "Date of Entry": entry_date,
        "District": district,
        "Retailer Name": retailer,
        "RIN": rin,
        "Crops Selected": crops,
    }
    for slot in range(1, DEFAULT_FIELDS.slots + 1):
        name, qty = products[slot - 1] if slot <= len(products) else ("", "")
        row[f"Product Name {slot}"] = name
        row[f"Product Quantity {slot}"] = str(qty)
    row["Order ID"] = order_id or ""
    return row


@pytest.fixture
def row_factory() -> Callable[..., dict]:
    return make_row


@pytest.fixture
def frame() -> Callable[[List[dict]], pd.DataFrame]:
    """Build an annotated records frame from row dicts."""

    def _frame(rows: List[dict]) -> pd.DataFrame:
        return annotate_records(pd.DataFrame(rows), DEFAULT_CATALOG, DEFAULT_FIELDS)

    return _frame


@pytest.fixture
def sample_records(frame) -> pd.DataFrame:
    """Three farmers across two districts.

    - 9000000001: qualifies on 01-03 (Nashik), buys again on 10-03 (Pune, pending)
    - 9000000002: 3 bags only, below threshold
    - 9000000003: rejected, then verified and qualifying on 05-03
    """
    return frame(
        [
            make_row("9000000001", entry_date="10-03-2024", status="Pending", district="Pune", crops="Rice", order_id="O-2"),
            make_row("9000000001", entry_date="01-03-2024", district="Nashik", crops="Wheat, Rice", order_id="O-1"),
            make_row(
                "9000000002",
                entry_date="02-03-2024",
                products=(("YaraMila Complex 25 Kg", "3"),),
                district="Nashik",
                retailer="Krishi Kendra",
                rin="RIN002",
                crops="wheat",
                order_id="O-3",
            ),
            make_row("9000000003", entry_date="03-03-2024", status="Rejected", district="Pune", order_id="O-4"),
            make_row(
                "9000000003",
                entry_date="05-03-2024",
                products=(("YaraLiva Nitrabor 25 Kg", "4"), ("YaraVita Bortrac 250 ML", "8")),
                district="Pune",
                crops="Grapes",
                order_id="O-5",
            ),
        ]
    )


@pytest.fixture
def sample_registry(sample_records):
    return build_registry(sample_records)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    rows = [
        make_row("9000000001", entry_date="01-03-2024", order_id="O-1"),
        make_row("9000000002", entry_date="02-03-2024", products=(("YaraMila Complex 25 Kg", "3"),), district="Pune", order_id="O-2"),
    ]
    pd.DataFrame(rows).to_csv(tmp_path / "yara_cbc.csv", index=False)
    _load_dashboard_data_cached.cache_clear()
    yield tmp_path
    _load_dashboard_data_cached.cache_clear()


@pytest.fixture
def settings(data_dir: Path) -> Settings:
    return Settings(
        data_dir=data_dir,
        records_path=data_dir / "yara_cbc.csv",
        disbursements_path=data_dir / "cashback_disbursements.csv",
        catalog_path=None,
        total_retailers=59,
    )
