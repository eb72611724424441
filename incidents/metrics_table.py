from __future__ import annotations

import math
from dataclasses import asdict
from typing import Any, Dict, Literal

import pandas as pd

from incidents.data import EXPORT_COLUMNS, format_ymd, incident_dates
from incidents.filters import IncidentFilters

TABLE_COLUMNS = [col for col, _ in EXPORT_COLUMNS]
DEFAULT_SORT = "incident_date"
PAGE_SIZES = (10, 25, 50, 100)

SortDir = Literal["asc", "desc"]


def default_direction(sort_key: str) -> SortDir:
    return "desc" if sort_key == DEFAULT_SORT else "asc"


def sort_rows(rows: pd.DataFrame, sort_key: str = DEFAULT_SORT, direction: SortDir = "desc") -> pd.DataFrame:
    """Sort for display. Dates compare as dates, text case-insensitively.

    Missing dates and numbers go last either way; empty text is an ordinary
    string, so it sorts first when ascending.
    """
    if rows.empty or sort_key not in rows.columns:
        return rows.copy()
    if sort_key == "incident_date":
        key = incident_dates(rows)
    elif pd.api.types.is_numeric_dtype(rows[sort_key]):
        key = pd.to_numeric(rows[sort_key], errors="coerce")
    else:
        key = rows[sort_key].fillna("").astype(str).str.lower()
    order = (
        pd.DataFrame({"key": key})
        .sort_values("key", ascending=(direction == "asc"), na_position="last", kind="mergesort")
        .index
    )
    return rows.loc[order]


def paginate(rows: pd.DataFrame, page: int = 1, page_size: int = 10) -> Dict[str, Any]:
    page_size = max(1, int(page_size))
    total_pages = max(1, math.ceil(len(rows) / page_size))
    page = max(1, min(total_pages, int(page)))
    start = (page - 1) * page_size
    return {
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "total_rows": int(len(rows)),
        "rows": rows.iloc[start : start + page_size],
    }


def compute_table(
    filters: IncidentFilters,
    ctx: Dict[str, Any],
    *,
    sort_key: str = DEFAULT_SORT,
    direction: SortDir | None = None,
    page: int = 1,
    page_size: int = 10,
) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("filtered_rows", pd.DataFrame())
    if sort_key not in TABLE_COLUMNS:
        sort_key = DEFAULT_SORT
    direction = direction or default_direction(sort_key)

    paged = paginate(sort_rows(rows, sort_key, direction), page, page_size)
    visible: pd.DataFrame = paged.pop("rows")
    records = []
    if not visible.empty:
        table = visible[[c for c in ["incident_id", *TABLE_COLUMNS] if c in visible.columns]].copy()
        table["incident_date"] = table["incident_date"].map(format_ymd).replace("", "-")
        records = table.astype(object).where(table.notna(), None).to_dict(orient="records")

    return {
        "filters": asdict(filters),
        "sort": {"key": sort_key, "direction": direction},
        **paged,
        "columns": [{"key": col, "label": label} for col, label in EXPORT_COLUMNS],
        "rows": records,
    }
