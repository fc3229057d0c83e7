from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from core.catalog import CASHBACK_THRESHOLD, DEFAULT_CATALOG, ProductCatalog, load_catalog
from core.filters import DashboardFilters, filter_records, filter_options, normalize_filters
from core.records import DEFAULT_FIELDS, RecordFields, annotate_records, cell_text
from core.registry import EligibilityRegistry


logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1]
RECORDS_FILE = "yara_cbc.csv"
DISBURSEMENTS_FILE = "cashback_disbursements.csv"
TOTAL_RETAILERS_DEFAULT = 59

DISBURSEMENT_COLUMNS = {
    "farmer mobile": "recipient",
    "recipient": "recipient",
    "mobile": "recipient",
    "mobile number": "recipient",
    "amount": "amount",
    "cashback amount": "amount",
    "cashback": "amount",
}


class DataLoadError(RuntimeError):
    """The primary purchase records could not be loaded."""


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    records_path: Path
    disbursements_path: Path
    catalog_path: Optional[Path]
    total_retailers: int
    threshold: float = CASHBACK_THRESHOLD


def get_settings() -> Settings:
    data_dir = Path(os.getenv("CBC_DATA_DIR") or DATA_DIR)
    catalog_file = os.getenv("CBC_CATALOG_FILE")
    try:
        total_retailers = int(os.getenv("CBC_TOTAL_RETAILERS", TOTAL_RETAILERS_DEFAULT))
    except ValueError:
        total_retailers = TOTAL_RETAILERS_DEFAULT
    return Settings(
        data_dir=data_dir,
        records_path=data_dir / os.getenv("CBC_RECORDS_FILE", RECORDS_FILE),
        disbursements_path=data_dir / os.getenv("CBC_DISBURSEMENTS_FILE", DISBURSEMENTS_FILE),
        catalog_path=(data_dir / catalog_file) if catalog_file else None,
        total_retailers=total_retailers,
    )


def file_signature(files: Iterable[Optional[Path]]) -> Tuple[Tuple[str, float], ...]:
    sig = []
    for f in files:
        if f is None:
            continue
        sig.append((str(f), f.stat().st_mtime if f.exists() else -1.0))
    return tuple(sig)


def format_currency_0(value: object) -> str:
    if value is None or pd.isna(value):
        return "N/A"
    return f"₹{float(value):,.0f}"


def format_currency_columns(df: pd.DataFrame, cols: Iterable[str], decimals: int = 0) -> pd.DataFrame:
    formatted = df.copy()
    for c in cols:
        if c in formatted.columns:
            formatted[c] = formatted[c].apply(lambda v: f"₹{float(v):,.{decimals}f}" if pd.notna(v) else "")
    return formatted


def load_purchase_records(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise DataLoadError(f"Purchase records file not found: {path}")
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (OSError, ValueError, pd.errors.ParserError) as exc:
        raise DataLoadError(f"Could not parse purchase records {path}: {exc}") from exc
    if df.columns.empty:
        raise DataLoadError(f"Purchase records file has no columns: {path}")
    df.columns = [str(c).strip() for c in df.columns]
    logger.info("Loaded %d purchase records from %s", len(df), path)
    return df


def load_disbursements(path: Path) -> pd.DataFrame:
    """Optional payout table; missing or unreadable means an empty frame, never an error."""
    empty = pd.DataFrame(columns=["recipient", "amount"])
    if not path.exists():
        logger.warning("Disbursement table not found at %s; using registry cashback", path)
        return empty
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except (OSError, ValueError, pd.errors.ParserError):
        logger.warning("Disbursement table %s unreadable; using registry cashback", path, exc_info=True)
        return empty

    df = df.rename(columns={c: DISBURSEMENT_COLUMNS.get(str(c).strip().lower(), c) for c in df.columns})
    df = df.loc[:, ~df.columns.duplicated()]
    if not {"recipient", "amount"}.issubset(df.columns):
        logger.warning("Disbursement table %s lacks recipient/amount columns: %s", path, list(df.columns))
        return empty
    out = df[["recipient", "amount"]].copy()
    out["recipient"] = out["recipient"].map(cell_text)
    out["amount"] = pd.to_numeric(out["amount"].str.replace(",", "", regex=False), errors="coerce").fillna(0.0)
    out = out[out["recipient"] != ""].reset_index(drop=True)
    logger.info("Loaded %d disbursement rows from %s", len(out), path)
    return out


# ---------------- Public API (Streamlit + FastAPI use) ----------------
@lru_cache(maxsize=4)
def _load_dashboard_data_cached(
    files_sig: Tuple[Tuple[str, float], ...],
    records_path: str,
    disbursements_path: str,
    catalog_path: Optional[str],
    total_retailers: int,
    threshold: float,
) -> Dict[str, object]:
    catalog = DEFAULT_CATALOG
    if catalog_path:
        try:
            catalog = load_catalog(Path(catalog_path))
        except (OSError, ValueError) as exc:
            raise DataLoadError(f"Could not load product catalog {catalog_path}: {exc}") from exc
    raw = load_purchase_records(Path(records_path))
    records = annotate_records(raw, catalog, DEFAULT_FIELDS)

    registry = EligibilityRegistry(catalog, threshold, DEFAULT_FIELDS)
    registry.rebuild(records)

    return {
        "files": [name for name, _ in files_sig],
        "catalog": catalog,
        "fields": DEFAULT_FIELDS,
        "records": records,
        "registry": registry,
        "disbursements": load_disbursements(Path(disbursements_path)),
        "options": filter_options(records, catalog, DEFAULT_FIELDS),
        "total_retailers": total_retailers,
        "threshold": threshold,
    }


def load_dashboard_data(settings: Optional[Settings] = None) -> Dict[str, object]:
    """Load records and build the registry once per distinct set of source files.

    Raises ``DataLoadError`` when the primary records are unavailable.
    """
    s = settings or get_settings()
    files_sig = file_signature([s.records_path, s.disbursements_path, s.catalog_path])
    return _load_dashboard_data_cached(
        files_sig,
        str(s.records_path),
        str(s.disbursements_path),
        str(s.catalog_path) if s.catalog_path else None,
        s.total_retailers,
        s.threshold,
    )


def reload_dashboard_data(settings: Optional[Settings] = None) -> Dict[str, object]:
    _load_dashboard_data_cached.cache_clear()
    return load_dashboard_data(settings)


def prepare_context(filters: dict | DashboardFilters, data_ctx: Dict[str, object]) -> Dict[str, object]:
    """Filtered view for one interaction. The registry is passed through untouched."""
    records: pd.DataFrame = data_ctx.get("records", pd.DataFrame())
    catalog: ProductCatalog = data_ctx.get("catalog", DEFAULT_CATALOG)
    fields: RecordFields = data_ctx.get("fields", DEFAULT_FIELDS)
    filt = filters if isinstance(filters, DashboardFilters) else normalize_filters(filters)

    filtered = filter_records(records, filt, catalog, fields)
    return {
        "filters": filt,
        "records": records,
        "filtered": filtered,
        "is_filtered": filt.is_active,
        "registry": data_ctx.get("registry"),
        "catalog": catalog,
        "fields": fields,
        "disbursements": data_ctx.get("disbursements", pd.DataFrame(columns=["recipient", "amount"])),
        "total_retailers": data_ctx.get("total_retailers", TOTAL_RETAILERS_DEFAULT),
    }


def farmer_ids(df: pd.DataFrame) -> List[str]:
    if df.empty or "farmer_id" not in df.columns:
        return []
    return sorted({f for f in df["farmer_id"].tolist() if f})
