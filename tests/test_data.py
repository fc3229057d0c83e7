"""Tests for data loading, caching and context preparation"""

import os

import pandas as pd
import pytest

from core.data import (
    DataLoadError,
    Settings,
    get_settings,
    load_dashboard_data,
    load_disbursements,
    load_purchase_records,
    prepare_context,
    reload_dashboard_data,
)


def test_load_purchase_records_keeps_text(settings):
    df = load_purchase_records(settings.records_path)
    assert len(df) == 2
    assert df.loc[0, "Farmer Mobile"] == "9000000001"
    assert df.loc[0, "Order ID"] == "O-1"
    assert df.loc[1, "Farmer Mobile"] == "9000000002"


def test_load_purchase_records_keeps_blank_cells(tmp_path, row_factory):
    path = tmp_path / "scans.csv"
    pd.DataFrame([row_factory("9000000001")]).to_csv(path, index=False)
    df = load_purchase_records(path)
    assert df.loc[0, "Order ID"] == ""
    assert df.loc[0, "Product Name 2"] == ""


def test_missing_primary_data_raises(tmp_path):
    with pytest.raises(DataLoadError):
        load_purchase_records(tmp_path / "absent.csv")


def test_empty_primary_data_raises(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("")
    with pytest.raises(DataLoadError):
        load_purchase_records(path)


def test_missing_disbursements_is_empty(tmp_path, caplog):
    df = load_disbursements(tmp_path / "absent.csv")
    assert df.empty
    assert list(df.columns) == ["recipient", "amount"]
    assert "not found" in caplog.text


def test_disbursement_columns_normalized(tmp_path):
    path = tmp_path / "payouts.csv"
    path.write_text("Farmer Mobile,Cashback Amount\n9000000001,\"1,200\"\n,50\n9000000002,abc\n")
    df = load_disbursements(path)
    assert df["recipient"].tolist() == ["9000000001", "9000000002"]
    assert df["amount"].tolist() == [1200.0, 0.0]


def test_disbursements_without_amount_column(tmp_path):
    path = tmp_path / "payouts.csv"
    path.write_text("Farmer Mobile,Note\n9000000001,paid\n")
    assert load_disbursements(path).empty


def test_load_dashboard_data_builds_registry(settings):
    ctx = load_dashboard_data(settings)
    assert len(ctx["records"]) == 2
    assert list(ctx["registry"]) == ["9000000001"]
    assert ctx["disbursements"].empty
    assert ctx["options"]["districts"] == ["Nashik", "Pune"]


def test_load_dashboard_data_is_cached(settings):
    assert load_dashboard_data(settings) is load_dashboard_data(settings)


def test_changed_file_rebuilds_registry(settings, row_factory):
    before = load_dashboard_data(settings)
    rows = [
        row_factory("9000000001", entry_date="01-03-2024"),
        row_factory("9000000002", entry_date="02-03-2024"),
    ]
    pd.DataFrame(rows).to_csv(settings.records_path, index=False)
    stat = settings.records_path.stat()
    os.utime(settings.records_path, (stat.st_atime, stat.st_mtime + 10))

    after = load_dashboard_data(settings)
    assert after is not before
    assert set(after["registry"]) == {"9000000001", "9000000002"}
    assert list(before["registry"]) == ["9000000001"]


def test_reload_clears_cache(settings):
    before = load_dashboard_data(settings)
    assert reload_dashboard_data(settings) is not before


def test_disbursement_file_is_picked_up(settings):
    settings.disbursements_path.write_text("Farmer Mobile,Amount\n9000000001,200\n")
    ctx = load_dashboard_data(settings)
    assert ctx["disbursements"]["amount"].sum() == 200


def test_custom_catalog(settings):
    catalog_path = settings.data_dir / "catalog.csv"
    catalog_path.write_text("product,price_per_unit,cashback_per_unit,budget\nYaraMila Complex,1000,10,5000\n")
    custom = Settings(
        data_dir=settings.data_dir,
        records_path=settings.records_path,
        disbursements_path=settings.disbursements_path,
        catalog_path=catalog_path,
        total_retailers=10,
    )
    ctx = load_dashboard_data(custom)
    # 5 bags x 1000 no longer reaches the threshold
    assert len(ctx["registry"]) == 0
    assert ctx["catalog"].names == ["YaraMila Complex"]


def test_prepare_context_filters_without_touching_registry(settings):
    data_ctx = load_dashboard_data(settings)
    awards_before = dict(data_ctx["registry"].awards)

    ctx = prepare_context({"districts": ["Pune"]}, data_ctx)
    assert ctx["is_filtered"]
    assert ctx["filtered"]["Farmer Mobile"].tolist() == ["9000000002"]
    assert ctx["registry"] is data_ctx["registry"]
    assert dict(data_ctx["registry"].awards) == awards_before
    assert len(data_ctx["records"]) == 2


def test_get_settings_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("CBC_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("CBC_RECORDS_FILE", "scans.csv")
    monkeypatch.setenv("CBC_TOTAL_RETAILERS", "not-a-number")
    s = get_settings()
    assert s.records_path == tmp_path / "scans.csv"
    assert s.catalog_path is None
    assert s.total_retailers == 59


def test_bad_catalog_is_a_load_error(settings):
    catalog_path = settings.data_dir / "catalog.csv"
    catalog_path.write_text("product,price\nYaraMila Complex,1000\n")
    custom = Settings(
        data_dir=settings.data_dir,
        records_path=settings.records_path,
        disbursements_path=settings.disbursements_path,
        catalog_path=catalog_path,
        total_retailers=59,
    )
    with pytest.raises(DataLoadError):
        load_dashboard_data(custom)
