from __future__ import annotations

import httpx
import pandas as pd
import pytest

from incidents.data import (
    DatasetLoadError,
    build_view,
    filter_options,
    format_int,
    format_percent,
    format_ymd,
    last_updated_date,
    load_dashboard_data,
    load_incidents,
    options_for,
    parse_incidents,
    prepare_context,
    read_dataset_text,
    search_options,
    years_in,
)
from incidents.filters import default_filters


def test_parse_maps_source_headers_and_types(rows):
    assert list(rows["incident_id"]) == ["A1", "A2", "A3", "A4", "A5"]
    first = rows.iloc[0]
    assert first["province"] == "DKI Jakarta"
    assert first["sector"] == "SMA"
    assert first["severity"] == 4.0
    assert first["response_hours"] == 12.0
    assert first["year"] == 2023
    assert pd.isna(rows.iloc[4]["year"])
    assert pd.isna(rows.iloc[4]["severity"])
    assert rows.iloc[4]["major_category"] == ""


def test_parse_blank_text_gives_empty_frame():
    empty = parse_incidents("")
    assert empty.empty
    assert "incident_id" in empty.columns
    assert parse_incidents("\ufeff   \n").empty


def test_parse_synthesizes_missing_ids():
    text = "id_insiden,provinsi\n,Bali\nX9,Aceh\n,Riau\n"
    rows = parse_incidents(text)
    assert list(rows["incident_id"]) == ["incident-1", "X9", "incident-3"]


def test_parse_tolerates_ragged_rows():
    text = "id_insiden,provinsi,tingkat_keparahan\nA,Bali,3,extra,fields\nB,Aceh\n"
    rows = parse_incidents(text)
    assert list(rows["incident_id"]) == ["A", "B"]
    assert rows.iloc[0]["province"] == "Bali"
    assert rows.iloc[0]["severity"] == 3.0
    assert pd.isna(rows.iloc[1]["severity"])


def test_parse_survives_unterminated_quote():
    rows = parse_incidents('id_insiden,provinsi\nA,"Bali\nB,Aceh\n')
    assert list(rows["incident_id"]) == ["A", "B"]
    assert rows.iloc[1]["province"] == "Aceh"


def test_parse_bad_numbers_become_absent():
    text = "id_insiden,tingkat_keparahan,waktu_respon_jam,tahun\nA,tinggi,inf,2023.9\nB,1,2,99999999999999999999\n"
    rows = parse_incidents(text)
    row = rows.iloc[0]
    assert pd.isna(row["severity"])
    assert pd.isna(row["response_hours"])
    assert row["year"] == 2023
    assert pd.isna(rows.iloc[1]["year"])
    assert rows.iloc[1]["severity"] == 1.0


def test_parse_strips_bom_and_ignores_unknown_columns():
    text = "\ufeffid_insiden,kolom_lain,provinsi\nA,zzz,Bali\n"
    rows = parse_incidents(text)
    assert "kolom_lain" not in rows.columns
    assert rows.iloc[0]["province"] == "Bali"


def test_read_local_file(tmp_path):
    path = tmp_path / "d.csv"
    path.write_bytes("\ufeffid_insiden\nA\n".encode("utf-8"))
    assert read_dataset_text(path) == "id_insiden\nA\n"


def test_read_missing_file_raises(tmp_path):
    with pytest.raises(DatasetLoadError) as err:
        read_dataset_text(tmp_path / "nope.csv")
    assert err.value.message.startswith("Failed to load dataset")


def test_read_url_uses_http_client(sample_csv):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Cache-Control"] == "no-store"
        return httpx.Response(200, text=sample_csv)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    rows = load_incidents("https://example.org/dataset.csv", client=client)
    assert len(rows) == 5


def test_read_url_non_success_status():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    with pytest.raises(DatasetLoadError) as err:
        read_dataset_text("https://example.org/missing.csv", client=client)
    assert err.value.message == "Failed to load dataset (404)"


def test_read_url_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with pytest.raises(DatasetLoadError):
        read_dataset_text("https://example.org/x.csv", client=client)


def test_load_dashboard_data_reads_env_override(dataset_file):
    data_ctx = load_dashboard_data()
    assert data_ctx["error"] is None
    assert len(data_ctx["rows"]) == 5
    assert data_ctx["source"] == str(dataset_file)


def test_load_dashboard_data_reports_failure(tmp_path, monkeypatch):
    monkeypatch.setenv("INCIDENT_DATASET", str(tmp_path / "missing.csv"))
    data_ctx = load_dashboard_data()
    assert data_ctx["rows"].empty
    assert data_ctx["error"].startswith("Failed to load dataset")


def test_options_are_distinct_sorted_and_non_blank(make_rows):
    rows = make_rows(
        [
            {"province": "jawa Barat", "sector": "SMA"},
            {"province": "Aceh", "sector": ""},
            {"province": "Éire", "sector": "SMA"},
            {"province": "Aceh", "sector": "SD"},
        ]
    )
    assert options_for(rows, "province") == ["Aceh", "Éire", "jawa Barat"]
    assert options_for(rows, "sector") == ["SD", "SMA"]


def test_filter_options_keys(rows):
    options = filter_options(rows)
    assert set(options) == {"sector", "province", "year", "category", "status"}
    assert options["year"] == [2023, 2024]
    assert years_in(rows.iloc[0:0]) == []
    assert options["status"] == ["Dalam proses", "Dilaporkan", "Selesai"]


def test_search_options_folds_case_and_accents():
    assert search_options(["Éire", "Aceh", "Bali"], "eir") == ["Éire"]
    assert search_options(["Aceh", "Bali"], "  ") == ["Aceh", "Bali"]


def test_last_updated_uses_full_frame(rows):
    assert last_updated_date(rows) == "2024-03-15"
    assert last_updated_date(rows.iloc[0:0]) is None


def test_format_helpers():
    assert format_int(1234567) == "1.234.567"
    assert format_int(2.5) == "3"
    assert format_percent(2, 3) == "66.7%"
    assert format_percent(0, 0) == "0%"
    assert format_ymd("2023-01-05T10:00:00") == "2023-01-05"
    assert format_ymd("bukan tanggal") == ""
    assert format_ymd(None) == ""


def test_build_view_contract(rows):
    view = build_view(rows, default_filters())
    assert view.raw_row_count == 5
    assert len(view.visible_rows) == 5
    assert view.applied_filter_count == 0
    assert view.last_updated_date == "2024-03-15"


def test_prepare_context_accepts_raw_filters(rows):
    ctx = prepare_context({"sector": ["SMA"], "severity_min": 9}, {"rows": rows, "error": None})
    assert ctx["filters"].sector == ["SMA"]
    assert ctx["filters"].severity_min == 5
    assert ctx["raw_row_count"] == 5
    assert ctx["applied_filter_count"] == 2
