from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

from incidents.charts import NON_SEXUAL_COLOR, SEXUAL_COLOR, to_vega_spec
from incidents.data import incident_dates, parse_incident_date
from incidents.filters import IncidentFilters
from incidents.metrics_overview import SEXUAL, category_classes

MONTHS_ID = ["Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agu", "Sep", "Okt", "Nov", "Des"]


def month_key(value: object) -> Optional[str]:
    ts = parse_incident_date(value)
    if ts is None:
        return None
    return f"{ts.year:04d}-{ts.month:02d}"


def month_label(key: str) -> str:
    try:
        year, month = (int(p) for p in key.split("-"))
    except ValueError:
        return key
    if not 1 <= month <= 12:
        return key
    return f"{MONTHS_ID[month - 1]} {year}"


def monthly_trend(rows: pd.DataFrame) -> List[Dict[str, Any]]:
    """Per-month sexual / non-sexual counts, ascending by YYYY-MM.

    Rows with unparseable dates are dropped; anything not classified as
    sexual is counted as non-sexual.
    """
    if rows.empty:
        return []
    dates = incident_dates(rows)
    frame = pd.DataFrame({"date": dates, "cls": category_classes(rows)}).dropna(subset=["date"])
    if frame.empty:
        return []
    frame["key"] = frame["date"].dt.strftime("%Y-%m")
    frame["sexual"] = frame["cls"].eq(SEXUAL).astype(int)
    frame["non_sexual"] = 1 - frame["sexual"]
    grouped = frame.groupby("key")[["sexual", "non_sexual"]].sum().sort_index()
    return [
        {"key": key, "label": month_label(key), "sexual": int(r["sexual"]), "non_sexual": int(r["non_sexual"])}
        for key, r in grouped.iterrows()
    ]


def compute_trend(filters: IncidentFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("filtered_rows", pd.DataFrame())
    points = monthly_trend(rows)

    charts: Dict[str, Any] = {}
    if points:
        long_df = pd.DataFrame(points).melt(
            id_vars=["key", "label"], value_vars=["sexual", "non_sexual"], var_name="series", value_name="count"
        )
        long_df["series"] = long_df["series"].map({"sexual": "Kekerasan seksual", "non_sexual": "Non-seksual"})
        hover = alt.selection_point(fields=["series"], on="mouseover", empty="all")
        line = (
            alt.Chart(long_df)
            .mark_line(point={"filled": True}, interpolate="monotone")
            .encode(
                x=alt.X("key:O", title="Bulan", sort=[p["key"] for p in points], axis=alt.Axis(labelAngle=0)),
                y=alt.Y("count:Q", title="Insiden", axis=alt.Axis(format="d", gridDash=[3, 8], domain=False, ticks=False)),
                color=alt.Color(
                    "series:N",
                    title=None,
                    scale=alt.Scale(domain=["Kekerasan seksual", "Non-seksual"], range=[SEXUAL_COLOR, NON_SEXUAL_COLOR]),
                ),
                opacity=alt.condition(hover, alt.value(1), alt.value(0.2)),
                tooltip=[
                    alt.Tooltip("label:N", title="Bulan"),
                    alt.Tooltip("series:N", title="Kategori"),
                    alt.Tooltip("count:Q", title="Insiden", format=","),
                ],
            )
            .add_params(hover)
        )
        charts["monthly_trend"] = to_vega_spec(line)

    return {"filters": asdict(filters), "points": points, "charts": charts}
