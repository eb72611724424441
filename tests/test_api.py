from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from api.main import app


@pytest.fixture
def client(dataset_file):
    return TestClient(app)


def test_meta_options(client):
    resp = client.get("/meta/options")
    assert resp.status_code == 200
    body = resp.json()
    assert body["year"] == [2023, 2024]
    assert body["category"] == ["Kekerasan seksual", "Non-seksual"]


def test_summary_counts(client):
    resp = client.post("/summary", json={"sector": ["SMA"], "search": "  "})
    body = resp.json()
    assert body["raw_row_count"] == 5
    assert body["visible_row_count"] == 2
    assert body["applied_filter_count"] == 1
    assert body["last_updated_date"] == "2024-03-15"
    assert body["error"] is None


def test_overview_clamps_invalid_severity(client):
    resp = client.post("/overview", json={"severity_min": 4, "severity_max": 2})
    assert resp.status_code == 200
    body = resp.json()
    assert body["filters"]["severity_min"] <= body["filters"]["severity_max"]


@pytest.mark.parametrize("path", ["/distribution", "/trend", "/response", "/map"])
def test_panel_endpoints(client, path):
    resp = client.post(path, json={})
    assert resp.status_code == 200
    assert "charts" in resp.json()


def test_table_endpoint(client):
    resp = client.post("/table?sort_key=severity&direction=desc&page=1&page_size=2", json={})
    body = resp.json()
    assert body["total_pages"] == 3
    assert [r["incident_id"] for r in body["rows"]] == ["A3", "A1"]


def test_export_endpoint(client):
    resp = client.post("/export", json={"province": ["Bali"]})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    lines = resp.text.splitlines()
    assert len(lines) == 2
    assert lines[1].startswith("2024-03-15,Non-seksual")


def test_missing_dataset_reports_error(tmp_path, monkeypatch):
    monkeypatch.setenv("INCIDENT_DATASET", str(tmp_path / "gone.csv"))
    body = TestClient(app).post("/summary", json={}).json()
    assert body["raw_row_count"] == 0
    assert body["error"].startswith("Failed to load dataset")


def test_endpoint_failure_is_contained(client, monkeypatch):
    def broken(filters, ctx):
        raise RuntimeError("kaput")

    monkeypatch.setattr(api_main, "compute_overview", broken)
    resp = client.post("/overview", json={})
    assert resp.status_code == 500
    assert resp.json() == {"error": "kaput", "type": "RuntimeError"}


def test_export_failure_is_contained(client, monkeypatch):
    def broken(rows):
        raise RuntimeError("kaput")

    monkeypatch.setattr(api_main, "export_csv", broken)
    resp = client.post("/export", json={})
    assert resp.status_code == 500
    assert resp.json() == {"error": "kaput", "type": "RuntimeError"}
