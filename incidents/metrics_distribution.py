from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import altair as alt
import numpy as np
import pandas as pd

from incidents.charts import PALETTE, SEVERITY_COLORS, to_vega_spec
from incidents.data import NOT_RECORDED
from incidents.filters import IncidentFilters

SEVERITY_LEVELS = [1, 2, 3, 4, 5]
MIN_SLICE_PCT = 0.03
OTHERS_LABEL = "Lainnya"


def severity_histogram(rows: pd.DataFrame) -> List[Dict[str, int]]:
    buckets = {level: 0 for level in SEVERITY_LEVELS}
    if not rows.empty and "severity" in rows.columns:
        sev = pd.to_numeric(rows["severity"], errors="coerce")
        sev = np.floor(sev[sev.between(1, 5)] + 0.5).astype(int)
        for level, count in sev.value_counts().items():
            buckets[int(level)] += int(count)
    return [{"severity": level, "count": buckets[level]} for level in SEVERITY_LEVELS]


def group_counts(rows: pd.DataFrame, column: str) -> List[Dict[str, Any]]:
    """Count rows per value of `column`, blank values under the placeholder label."""
    if rows.empty or column not in rows.columns:
        return []
    keys = rows[column].fillna("").astype(str).str.strip().replace("", NOT_RECORDED)
    counts = keys.value_counts(sort=False)
    # Stable: ties keep first-seen order.
    ordered = sorted(counts.items(), key=lambda kv: -kv[1])
    return [{"name": name, "value": int(value)} for name, value in ordered]


def status_slices(rows: pd.DataFrame, *, min_pct: float = MIN_SLICE_PCT) -> List[Dict[str, Any]]:
    groups = group_counts(rows, "case_status")
    total = sum(g["value"] for g in groups)
    if not total:
        return []
    major: List[Dict[str, Any]] = []
    others = 0
    for g in groups:
        pct = g["value"] / total
        if pct < min_pct:
            others += g["value"]
        else:
            major.append({**g, "pct": pct})
    if others:
        major.append({"name": OTHERS_LABEL, "value": others, "pct": others / total})
    return major


def _bar_chart(data: List[Dict[str, Any]], title: str) -> alt.Chart:
    df = pd.DataFrame(data)
    return (
        alt.Chart(df)
        .mark_bar(cornerRadiusEnd=6)
        .encode(
            y=alt.Y("name:N", sort="-x", title=None),
            x=alt.X("value:Q", title="Insiden", axis=alt.Axis(format="d", gridDash=[3, 8])),
            color=alt.Color("name:N", legend=None, scale=alt.Scale(range=PALETTE)),
            tooltip=[alt.Tooltip("name:N", title=title), alt.Tooltip("value:Q", title="Insiden", format=",")],
        )
    )


def compute_distribution(filters: IncidentFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("filtered_rows", pd.DataFrame())

    histogram = severity_histogram(rows)
    by_sector = group_counts(rows, "sector")
    by_province = group_counts(rows, "province")
    slices = status_slices(rows)

    charts: Dict[str, Any] = {}
    if any(b["count"] for b in histogram):
        hist = (
            alt.Chart(pd.DataFrame(histogram))
            .mark_bar(cornerRadiusTopLeft=6, cornerRadiusTopRight=6)
            .encode(
                x=alt.X("severity:O", title="Severity"),
                y=alt.Y("count:Q", title="Insiden", axis=alt.Axis(format="d")),
                color=alt.Color("severity:O", legend=None, scale=alt.Scale(domain=SEVERITY_LEVELS, range=SEVERITY_COLORS)),
                tooltip=["severity", alt.Tooltip("count:Q", title="Insiden", format=",")],
            )
        )
        charts["severity_histogram"] = to_vega_spec(hist)
    if by_sector:
        charts["by_sector"] = to_vega_spec(_bar_chart(by_sector, "Sektor"))
    if by_province:
        charts["by_province"] = to_vega_spec(_bar_chart(by_province, "Provinsi"))
    if slices:
        pie = (
            alt.Chart(pd.DataFrame(slices))
            .mark_arc(innerRadius=60)
            .encode(
                theta=alt.Theta("value:Q"),
                color=alt.Color("name:N", title="Status", scale=alt.Scale(range=PALETTE)),
                tooltip=[
                    alt.Tooltip("name:N", title="Status"),
                    alt.Tooltip("value:Q", title="Insiden", format=","),
                    alt.Tooltip("pct:Q", title="Proporsi", format=".1%"),
                ],
            )
        )
        charts["status_pie"] = to_vega_spec(pie)

    return {
        "filters": asdict(filters),
        "severity_histogram": histogram,
        "by_sector": by_sector,
        "by_province": by_province,
        "status_slices": slices,
        "charts": charts,
    }
