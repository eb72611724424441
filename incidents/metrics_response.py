from __future__ import annotations

import math
from dataclasses import asdict
from typing import Any, Dict, List

import altair as alt
import numpy as np
import pandas as pd

from incidents.charts import NON_SEXUAL_COLOR, to_vega_spec
from incidents.filters import IncidentFilters


def response_points(rows: pd.DataFrame) -> List[Dict[str, Any]]:
    """One point per row carrying both a response time and a resolution time."""
    if rows.empty or not {"response_hours", "resolution_days"}.issubset(rows.columns):
        return []
    response = pd.to_numeric(rows["response_hours"], errors="coerce")
    resolution = pd.to_numeric(rows["resolution_days"], errors="coerce")
    keep = np.isfinite(response) & np.isfinite(resolution)
    subset = rows[keep]
    types = subset.get("incident_type", pd.Series("", index=subset.index)).fillna("").astype(str)
    ids = subset.get("incident_id", pd.Series("", index=subset.index)).fillna("").astype(str)
    labels = types.where(types != "", ids)
    return [
        {"response": float(x), "resolution": float(y), "label": str(label)}
        for x, y, label in zip(response[keep], resolution[keep], labels)
    ]


def response_summary(points: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not points:
        return {"count": 0, "mean_response": None, "mean_resolution": None, "max_response": 0, "max_resolution": 0}
    xs = [p["response"] for p in points]
    ys = [p["resolution"] for p in points]
    return {
        "count": len(points),
        "mean_response": sum(xs) / len(xs),
        "mean_resolution": sum(ys) / len(ys),
        # axis domain with 5% headroom
        "max_response": math.ceil(max(xs) * 1.05),
        "max_resolution": math.ceil(max(ys) * 1.05),
    }


def compute_response(filters: IncidentFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("filtered_rows", pd.DataFrame())
    points = response_points(rows)
    summary = response_summary(points)

    charts: Dict[str, Any] = {}
    if points:
        df = pd.DataFrame(points)
        scatter = (
            alt.Chart(df)
            .mark_circle(size=40, color=NON_SEXUAL_COLOR, opacity=0.9, stroke="white", strokeWidth=0.8)
            .encode(
                x=alt.X("response:Q", title="Respon (jam)", scale=alt.Scale(domain=[0, summary["max_response"]])),
                y=alt.Y("resolution:Q", title="Penyelesaian (hari)", scale=alt.Scale(domain=[0, summary["max_resolution"]])),
                tooltip=[
                    alt.Tooltip("label:N", title="Insiden"),
                    alt.Tooltip("response:Q", title="Respon (jam)", format=".1f"),
                    alt.Tooltip("resolution:Q", title="Penyelesaian (hari)", format=".1f"),
                ],
            )
        )
        mean_x = alt.Chart(pd.DataFrame({"x": [summary["mean_response"]]})).mark_rule(strokeDash=[4, 4]).encode(x="x:Q")
        mean_y = alt.Chart(pd.DataFrame({"y": [summary["mean_resolution"]]})).mark_rule(strokeDash=[4, 4]).encode(y="y:Q")
        charts["response_resolution"] = to_vega_spec(alt.layer(scatter, mean_x, mean_y))

    return {"filters": asdict(filters), "points": points, "summary": summary, "charts": charts}
