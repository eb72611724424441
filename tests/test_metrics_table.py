from __future__ import annotations

from incidents.data import EXPORT_COLUMNS, prepare_context
from incidents.filters import default_filters
from incidents.metrics_table import compute_table, default_direction, paginate, sort_rows


def test_date_sort_puts_missing_last_both_ways(rows):
    desc = sort_rows(rows, "incident_date", "desc")
    assert list(desc["incident_id"]) == ["A4", "A3", "A2", "A1", "A5"]
    asc = sort_rows(rows, "incident_date", "asc")
    assert list(asc["incident_id"]) == ["A1", "A2", "A3", "A4", "A5"]


def test_text_sort_is_case_insensitive(make_rows):
    rows = make_rows([{"province": "bali"}, {"province": "Aceh"}, {"province": "Banten"}])
    assert list(sort_rows(rows, "province", "asc")["province"]) == ["Aceh", "bali", "Banten"]


def test_numeric_sort(rows):
    out = sort_rows(rows, "severity", "desc")
    assert list(out["incident_id"]) == ["A3", "A1", "A4", "A2", "A5"]


def test_unknown_sort_key_keeps_order(rows):
    assert list(sort_rows(rows, "nope")["incident_id"]) == list(rows["incident_id"])


def test_paginate_clamps_page(rows):
    page = paginate(rows, page=9, page_size=2)
    assert page["page"] == 3
    assert page["total_pages"] == 3
    assert len(page["rows"]) == 1
    assert paginate(rows.iloc[0:0], page=0)["total_pages"] == 1


def test_default_direction():
    assert default_direction("incident_date") == "desc"
    assert default_direction("province") == "asc"


def test_compute_table_payload(rows):
    ctx = prepare_context(default_filters(), {"rows": rows})
    out = compute_table(default_filters(), ctx, page_size=10)
    assert out["sort"] == {"key": "incident_date", "direction": "desc"}
    assert out["total_rows"] == 5
    assert [c["label"] for c in out["columns"]] == [label for _, label in EXPORT_COLUMNS]
    last = out["rows"][-1]
    assert last["incident_id"] == "A5"
    assert last["incident_date"] == "-"
    assert last["severity"] is None


def test_compute_table_rejects_unknown_sort_key(rows):
    ctx = prepare_context(default_filters(), {"rows": rows})
    out = compute_table(default_filters(), ctx, sort_key="notes")
    assert out["sort"]["key"] == "incident_date"


def test_empty_text_sorts_first_ascending(make_rows):
    rows = make_rows([{"province": "Bali"}, {"province": ""}, {"province": "aceh"}])
    assert list(sort_rows(rows, "province", "asc")["province"]) == ["", "aceh", "Bali"]
