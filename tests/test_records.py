"""Unit tests for row normalization and transaction valuation"""

import pandas as pd
import pytest

from core.records import (
    EPOCH,
    annotate_records,
    compute_totals,
    crop_key,
    extract_line_items,
    resolve_date,
    resolve_product_identity,
    resolve_quantity,
    split_crops,
    strip_derived,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("5", 5),
        (" 12 ", 12),
        ("5 bags", 5),
        ("2.9", 2),
        ("-3", -3),
        ("", 0),
        ("abc", 0),
        (None, 0),
        (float("nan"), 0),
    ],
)
def test_resolve_quantity(raw, expected):
    assert resolve_quantity(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("15-03-2024", pd.Timestamp(2024, 3, 15)),
        ("15/03/2024", pd.Timestamp(2024, 3, 15)),
        ("15 Mar 2024", pd.Timestamp(2024, 3, 15)),
        ("15-march-2024", pd.Timestamp(2024, 3, 15)),
        ("05-Sept-24", pd.Timestamp(2024, 9, 5)),
        ("15--03 // 2024", pd.Timestamp(2024, 3, 15)),
        ("15-03-2024 10:30:00", pd.Timestamp(2024, 3, 15)),
    ],
)
def test_resolve_date_tokenized(raw, expected):
    assert resolve_date(raw) == expected


def test_resolve_date_falls_back_to_generic_parsing():
    # Year-first text is not day-month-year; generic parsing handles it.
    assert resolve_date("2024-03-15") == pd.Timestamp(2024, 3, 15)


def test_resolve_date_falls_back_to_epoch():
    assert resolve_date("") == EPOCH
    assert resolve_date(None) == EPOCH
    assert resolve_date("not a date") == EPOCH


@pytest.mark.parametrize("raw", ["today", "now", " Today ", "NOW", "yesterday"])
def test_resolve_date_ignores_wall_clock_keywords(raw):
    assert resolve_date(raw) == EPOCH


def test_resolve_product_identity():
    assert resolve_product_identity("YaraLiva Nitrabor 25 Kg") == "YaraLiva Nitrabor"
    assert resolve_product_identity("Something else") is None
    assert resolve_product_identity(None) is None


def test_compute_totals_example(row_factory):
    row = row_factory("9000000001", products=(("YaraMila Complex 25 Kg", "5"),))
    totals = compute_totals(row)

    assert totals.purchase_value == 12000
    assert totals.cashback_value == 200
    assert totals.line_items == (("YaraMila Complex", 5),)


def test_compute_totals_drops_unresolved_and_non_positive(row_factory):
    row = row_factory(
        "9000000001",
        products=(
            ("YaraMila Complex 25 Kg", "2"),
            ("Unknown Fertilizer", "10"),
            ("YaraVita Bortrac 250 ML", "0"),
            ("YaraVita Seniphos 500 ML", "-4"),
            ("YaraVita Zintrac 700 250 ML", "x"),
        ),
    )
    totals = compute_totals(row)

    assert totals.purchase_value == 4800
    assert totals.cashback_value == 80
    assert extract_line_items(row) == (("YaraMila Complex", 2),)


def test_same_product_in_two_slots_counts_twice(row_factory):
    row = row_factory("9000000001", products=(("YaraMila Complex", "2"), ("YaraMila Complex 25 Kg", "3")))
    assert compute_totals(row).purchase_value == 12000


def test_split_crops_trims_and_drops_blanks():
    assert split_crops("Wheat, Rice , ,wheat") == ["Wheat", "Rice", "wheat"]
    assert split_crops(None) == []
    assert crop_key(" Wheat ") == crop_key("wheat")


def test_annotate_records_adds_derived_columns(row_factory):
    raw = pd.DataFrame([row_factory(" 9000000001 ", entry_date="bad"), row_factory("9000000002", entry_date="02-03-2024")])
    out = annotate_records(raw)

    assert out["row_id"].tolist() == [0, 1]
    assert out["farmer_id"].tolist() == ["9000000001", "9000000002"]
    assert out["entry_date"].iloc[0] == EPOCH
    assert out["purchase_value"].tolist() == [12000, 12000]
    assert "row_id" not in raw.columns
    assert list(strip_derived(out).columns) == list(raw.columns)
