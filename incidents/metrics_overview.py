from __future__ import annotations

import re
import unicodedata
from dataclasses import asdict
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from incidents.data import format_int, format_percent
from incidents.filters import IncidentFilters

SEXUAL = "sexual"
NON_SEXUAL = "non_sexual"
UNCLASSIFIED = "unclassified"

RESPONSE_SCALE_HOURS = 48.0


def normalize_label(value: object) -> str:
    """Strip diacritics, turn -, _ and / into spaces, collapse whitespace, lower-case."""
    s = unicodedata.normalize("NFKD", "" if value is None else str(value))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = re.sub(r"[-_/]", " ", s)
    return re.sub(r"\s+", " ", s).strip().lower()


def classify_category(value: object) -> str:
    key = normalize_label(value)
    if key in ("kekerasan seksual", "seksual"):
        return SEXUAL
    if key.startswith("non"):
        return NON_SEXUAL
    return UNCLASSIFIED


def is_sexual(value: object) -> bool:
    return classify_category(value) == SEXUAL


def _clamp01(value: float) -> float:
    if value is None or not np.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


def total_count(rows: pd.DataFrame) -> int:
    return int(len(rows))


def completion_count(rows: pd.DataFrame) -> int:
    if rows.empty or "case_status" not in rows.columns:
        return 0
    return int(rows["case_status"].map(normalize_label).eq("selesai").sum())


def completion_percentage(rows: pd.DataFrame) -> str:
    return format_percent(completion_count(rows), total_count(rows))


def category_classes(rows: pd.DataFrame) -> pd.Series:
    if rows.empty or "major_category" not in rows.columns:
        return pd.Series(UNCLASSIFIED, index=rows.index, dtype=object)
    return rows["major_category"].map(classify_category)


def sexual_count(rows: pd.DataFrame) -> int:
    return int(category_classes(rows).eq(SEXUAL).sum())


def sexual_percentage(rows: pd.DataFrame) -> str:
    return format_percent(sexual_count(rows), total_count(rows))


def average_response_hours(rows: pd.DataFrame) -> Optional[float]:
    """Mean response time in hours, or None when no row carries one."""
    if rows.empty or "response_hours" not in rows.columns:
        return None
    values = pd.to_numeric(rows["response_hours"], errors="coerce")
    values = values[np.isfinite(values)]
    if values.empty:
        return None
    return float(values.mean())


def compute_overview(filters: IncidentFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("filtered_rows", pd.DataFrame())
    raw_total = int(ctx.get("raw_row_count", 0) or 0)

    total = total_count(rows)
    completed = completion_count(rows)
    classes = category_classes(rows)
    sexual = int(classes.eq(SEXUAL).sum())
    avg_response = average_response_hours(rows)

    cards = [
        {
            "key": "total",
            "label": "Total Insiden",
            "value": format_int(total),
            "sub": f"Dari {format_int(raw_total)} entri dataset" if raw_total else "Dataset terfilter",
            "progress": _clamp01(total / raw_total) if raw_total else 0.0,
            "progress_label": f"{format_int(total)} / {format_int(raw_total or total)}",
        },
        {
            "key": "done",
            "label": "Kasus Selesai",
            "value": format_int(completed),
            "sub": f"{format_percent(completed, total)} selesai" if total else "Belum ada data",
            "progress": _clamp01(completed / total) if total else 0.0,
            "progress_label": format_percent(completed, total),
        },
        {
            "key": "sexual",
            "label": "Proporsi Kekerasan Seksual",
            "value": format_percent(sexual, total),
            "sub": f"{format_int(sexual)} insiden berjenis seksual" if total else "Belum ada data",
            "progress": _clamp01(sexual / total) if total else 0.0,
            "progress_label": format_percent(sexual, total),
        },
        {
            "key": "response",
            "label": "Rata-rata Waktu Respon",
            "value": f"{avg_response:.1f} jam" if avg_response is not None else "Tidak tersedia",
            "sub": "Berdasarkan entri dengan waktu respon",
            "progress": _clamp01(avg_response / RESPONSE_SCALE_HOURS) if avg_response is not None else 0.0,
            "progress_label": f"{avg_response:.1f} jam" if avg_response is not None else "-",
        },
    ]

    return {
        "filters": asdict(filters),
        "kpis": {
            "total": total,
            "raw_total": raw_total,
            "completed": completed,
            "completion_pct": format_percent(completed, total),
            "sexual": sexual,
            "non_sexual": total - sexual,
            "unclassified": int(classes.eq(UNCLASSIFIED).sum()),
            "sexual_pct": format_percent(sexual, total),
            "avg_response_hours": avg_response,
        },
        "cards": cards,
    }
