"""Endpoint tests against a temporary data directory"""

import io

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from api.main import app


@pytest.fixture
def client(data_dir, monkeypatch):
    monkeypatch.setenv("CBC_DATA_DIR", str(data_dir))
    monkeypatch.delenv("CBC_RECORDS_FILE", raising=False)
    monkeypatch.delenv("CBC_CATALOG_FILE", raising=False)
    return TestClient(app)


def test_overview(client):
    resp = client.post("/overview", json={})
    assert resp.status_code == 200
    kpis = resp.json()["kpis"]
    assert kpis["total_scans"] == 2
    assert kpis["cashback_winners"] == 1
    assert kpis["total_cashback"] == 200
    assert kpis["active_retailers_label"] == "1/59"


def test_overview_with_filters(client):
    resp = client.post("/overview", json={"districts": ["Pune"], "start_date": "2024-03-01"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["kpis"]["total_scans"] == 1
    assert body["kpis"]["cashback_winners"] == 0
    assert body["filters"]["start_date"] == "2024-03-01"


def test_meta_options(client):
    resp = client.get("/meta/options")
    assert resp.status_code == 200
    assert resp.json()["districts"] == ["Nashik", "Pune"]
    assert resp.json()["products"] == ["YaraMila Complex"]


def test_reload(client):
    resp = client.post("/reload")
    assert resp.status_code == 200
    body = resp.json()
    assert body["records"] == 2
    assert body["awards"] == 1
    assert body["total_cashback"] == 200
    assert body["catalog"]["YaraMila Complex"] == 75000


@pytest.mark.parametrize("page", ["products", "districts", "retailers", "crops", "debug"])
def test_pages_respond(client, page):
    resp = client.post(f"/{page}", json={})
    assert resp.status_code == 200
    assert "filters" in resp.json()


def test_export(client):
    resp = client.post("/export", json={"districts": ["Nashik"]})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "yara_dashboard_export_" in resp.headers["content-disposition"]

    df = pd.read_csv(io.StringIO(resp.text), dtype=str, keep_default_na=False)
    assert df["Farmer Mobile"].tolist() == ["9000000001"]
    assert "purchase_value" not in df.columns
    assert "line_items" not in df.columns


def test_missing_records_is_unavailable(client, data_dir):
    (data_dir / "yara_cbc.csv").unlink()
    resp = client.post("/overview", json={})
    assert resp.status_code == 503
    assert resp.json()["type"] == "DataLoadError"
    assert client.post("/export", json={}).status_code == 503
    assert client.get("/meta/options").status_code == 503
