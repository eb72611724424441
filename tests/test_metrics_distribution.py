from __future__ import annotations

from incidents.data import NOT_RECORDED, prepare_context
from incidents.filters import default_filters
from incidents.metrics_distribution import (
    OTHERS_LABEL,
    compute_distribution,
    group_counts,
    severity_histogram,
    status_slices,
)


def test_histogram_has_five_buckets_and_rounds(make_rows):
    rows = make_rows([{"severity": v} for v in [1, 1.4, 1.5, 2.5, 4.49, 5, 6, 0, ""]] + [{"severity": "x"}])
    hist = severity_histogram(rows)
    assert [b["severity"] for b in hist] == [1, 2, 3, 4, 5]
    assert {b["severity"]: b["count"] for b in hist} == {1: 2, 2: 1, 3: 1, 4: 1, 5: 1}


def test_histogram_empty_subset(rows):
    assert all(b["count"] == 0 for b in severity_histogram(rows.iloc[0:0]))


def test_group_counts_uses_placeholder_and_orders_by_count(make_rows):
    rows = make_rows(
        [
            {"sector": "SD", "incident_id": "1"},
            {"sector": "SMA", "incident_id": "2"},
            {"sector": "", "incident_id": "3"},
            {"sector": "SMA", "incident_id": "4"},
        ]
    )
    groups = group_counts(rows, "sector")
    assert groups[0] == {"name": "SMA", "value": 2}
    assert {g["name"] for g in groups[1:]} == {"SD", NOT_RECORDED}
    assert sum(g["value"] for g in groups) == len(rows)


def test_status_slices_fold_small_buckets(make_rows):
    rows = make_rows([{"case_status": "Selesai"}] * 40 + [{"case_status": "Ditolak"}])
    slices = status_slices(rows)
    assert [s["name"] for s in slices] == ["Selesai", OTHERS_LABEL]
    assert slices[-1]["value"] == 1


def test_compute_distribution_payload(rows):
    ctx = prepare_context(default_filters(), {"rows": rows, "error": None})
    out = compute_distribution(default_filters(), ctx)
    assert sum(b["count"] for b in out["severity_histogram"]) == 4
    assert out["by_sector"][0] == {"name": "SMA", "value": 2}
    assert {"severity_histogram", "by_sector", "by_province", "status_pie"} <= set(out["charts"])
    assert out["charts"]["by_sector"]["$schema"].startswith("https://vega.github.io/schema/vega-lite/")


def test_compute_distribution_without_rows():
    ctx = prepare_context(default_filters(), {"rows": None})
    out = compute_distribution(default_filters(), ctx)
    assert out["by_sector"] == []
    assert out["status_slices"] == []
    assert out["charts"] == {}
