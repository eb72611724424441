from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import pandas as pd

SEVERITY_FLOOR = 1
SEVERITY_CEILING = 5

SEARCH_COLUMNS = ("incident_type", "perpetrator_role", "location")


@dataclass(frozen=True)
class IncidentFilters:
    sector: List[str] = field(default_factory=list)
    province: List[str] = field(default_factory=list)
    year: List[int] = field(default_factory=list)
    category: List[str] = field(default_factory=list)
    status: List[str] = field(default_factory=list)
    severity_min: int = SEVERITY_FLOOR
    severity_max: int = SEVERITY_CEILING
    search: str = ""

    @property
    def severity_narrowed(self) -> bool:
        return self.severity_min > SEVERITY_FLOOR or self.severity_max < SEVERITY_CEILING


def default_filters() -> IncidentFilters:
    return IncidentFilters()


def _as_str(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _as_int(value: object) -> Optional[int]:
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return None


@dataclass(frozen=True)
class Dimension:
    """A multi-select filter dimension bound to one row column.

    `key` is the IncidentFilters field, `column` the DataFrame column it is
    compared against, `coerce` turns an untrusted value into a member (or None).
    """

    key: str
    column: str
    label: str
    coerce: Callable[[object], Any] = _as_str

    def selected(self, filters: IncidentFilters) -> List[Any]:
        return list(getattr(filters, self.key))

    def clean(self, values: Optional[Iterable[object]]) -> List[Any]:
        out: List[Any] = []
        for v in values or []:
            item = self.coerce(v)
            if item is None or item in out:
                continue
            out.append(item)
        return out

    def mask(self, rows: pd.DataFrame, selected: List[Any]) -> pd.Series:
        if not selected:
            return pd.Series(True, index=rows.index)
        if self.column not in rows.columns:
            return pd.Series(False, index=rows.index)
        # Absent values never match: isin() is False for <NA>.
        return rows[self.column].isin(selected).fillna(False).astype(bool)


DIMENSIONS: Dict[str, Dimension] = {
    d.key: d
    for d in (
        Dimension("sector", "sector", "Sektor"),
        Dimension("province", "province", "Provinsi"),
        Dimension("year", "year", "Tahun", coerce=_as_int),
        Dimension("category", "major_category", "Kategori"),
        Dimension("status", "case_status", "Status"),
    )
}

_FIELD_NAMES = {f.name for f in fields(IncidentFilters)}


def _clamp_severity(value: object, fallback: int) -> int:
    n = _as_int(value)
    if n is None:
        n = fallback
    return max(SEVERITY_FLOOR, min(SEVERITY_CEILING, n))


def merge_filters(current: IncidentFilters, partial: Mapping[str, Any]) -> IncidentFilters:
    """Overwrite the fields present in `partial`, then restore the severity invariant.

    When the clamped range is inverted, the handle named in `partial` wins:
    an explicit `severity_min` drags the max up, otherwise an explicit
    `severity_max` drags the min down.
    """
    updates = {k: v for k, v in partial.items() if k in _FIELD_NAMES}
    for key, dim in DIMENSIONS.items():
        if key in updates:
            updates[key] = dim.clean(updates[key])

    sev_min = _clamp_severity(updates.get("severity_min", current.severity_min), current.severity_min)
    sev_max = _clamp_severity(updates.get("severity_max", current.severity_max), current.severity_max)
    if sev_min > sev_max:
        if "severity_min" in updates:
            sev_max = sev_min
        elif "severity_max" in updates:
            sev_min = sev_max
        else:
            sev_min, sev_max = sev_max, sev_min
    updates["severity_min"] = sev_min
    updates["severity_max"] = sev_max

    if "search" in updates:
        updates["search"] = str(updates["search"] or "").strip()
    return replace(current, **updates)


def toggle_value(values: List[Any], value: Any) -> List[Any]:
    if value in values:
        return [v for v in values if v != value]
    return [*values, value]


def toggle_filter(current: IncidentFilters, key: str, value: object) -> IncidentFilters:
    dim = DIMENSIONS[key]
    item = dim.coerce(value)
    if item is None:
        return current
    return merge_filters(current, {key: toggle_value(dim.selected(current), item)})


def reset_dimension(current: IncidentFilters, key: str) -> IncidentFilters:
    if key == "severity":
        return merge_filters(current, {"severity_min": SEVERITY_FLOOR, "severity_max": SEVERITY_CEILING})
    if key == "search":
        return merge_filters(current, {"search": ""})
    return merge_filters(current, {key: []})


def select_all(current: IncidentFilters, key: str, options: Iterable[object]) -> IncidentFilters:
    return merge_filters(current, {key: list(options)})


def normalize_filters(raw: Optional[Mapping[str, Any]]) -> IncidentFilters:
    raw = raw or {}
    partial: Dict[str, Any] = {}
    for key in DIMENSIONS:
        values = raw.get(key)
        if isinstance(values, (str, int)):
            values = [values]
        partial[key] = values or []
    for key in ("severity_min", "severity_max"):
        if raw.get(key) is not None:
            partial[key] = raw[key]
    search = raw.get("search")
    partial["search"] = "" if search is None else str(search)
    return merge_filters(default_filters(), partial)


def applied_filter_count(filters: IncidentFilters) -> int:
    count = sum(1 for dim in DIMENSIONS.values() if dim.selected(filters))
    if filters.severity_narrowed:
        count += 1
    if filters.search.strip():
        count += 1
    return count


# ---------------- Evaluator ----------------
def _search_haystack(rows: pd.DataFrame) -> pd.Series:
    parts = [
        rows[c].fillna("").astype(str) if c in rows.columns else pd.Series("", index=rows.index)
        for c in SEARCH_COLUMNS
    ]
    haystack = parts[0]
    for p in parts[1:]:
        haystack = haystack + " " + p
    return haystack.str.lower()


def visibility_mask(rows: pd.DataFrame, filters: IncidentFilters) -> pd.Series:
    mask = pd.Series(True, index=rows.index)
    if not len(rows.index):
        return mask

    for dim in DIMENSIONS.values():
        mask &= dim.mask(rows, dim.selected(filters))

    severity = pd.to_numeric(rows.get("severity", pd.Series(index=rows.index, dtype=float)), errors="coerce")
    # Out-of-scale severities count as absent.
    present = severity.between(SEVERITY_FLOOR, SEVERITY_CEILING).fillna(False)
    in_range = severity.between(filters.severity_min, filters.severity_max).fillna(False)
    if filters.severity_narrowed:
        mask &= present & in_range
    else:
        mask &= ~present | in_range

    needle = filters.search.strip().lower()
    if needle:
        mask &= _search_haystack(rows).str.contains(needle, regex=False, na=False)
    return mask.astype(bool)


def apply_filters(rows: pd.DataFrame, filters: IncidentFilters) -> pd.DataFrame:
    if rows.empty:
        return rows.copy()
    return rows[visibility_mask(rows, filters)].copy()


def is_visible(row: Mapping[str, Any], filters: IncidentFilters) -> bool:
    frame = pd.DataFrame([dict(row)])
    if "year" in frame.columns:
        frame["year"] = pd.to_numeric(frame["year"], errors="coerce").astype("Int64")
    return bool(visibility_mask(frame, filters).iloc[0])
