from __future__ import annotations

import csv
import io
import logging
import math
import os
import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import httpx
import numpy as np
import pandas as pd

from incidents.filters import IncidentFilters, applied_filter_count, apply_filters, normalize_filters

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
DEFAULT_DATASET = DATA_DIR / "dataset.csv"
DATASET_ENV = "INCIDENT_DATASET"
HTTP_TIMEOUT = 30.0

NOT_RECORDED = "Tidak tercatat"
CATEGORY_OPTIONS = ["Kekerasan seksual", "Non-seksual"]

INCIDENT_COLUMNS = {
    "id_insiden": "incident_id",
    "tanggal_insiden": "incident_date",
    "tahun": "year",
    "tahun_akademik": "academic_year",
    "semester": "semester",
    "provinsi": "province",
    "lat": "latitude",
    "lon": "longitude",
    "sektor_pendidikan": "sector",
    "kategori_besar": "major_category",
    "jenis_insiden": "incident_type",
    "lokasi": "location",
    "peran_pelaku": "perpetrator_role",
    "tingkat_keparahan": "severity",
    "status_kasus": "case_status",
    "waktu_respon_jam": "response_hours",
    "hari_penyelesaian": "resolution_days",
    "catatan": "notes",
    "koordinat": "coordinates",
    "coordinates": "coordinates",
    "coordinate": "coordinates",
    "coords": "coordinates",
    "coord": "coordinates",
}

# Export column order and header labels.
EXPORT_COLUMNS = [
    ("incident_date", "Tanggal"),
    ("major_category", "Kategori"),
    ("incident_type", "Jenis Insiden"),
    ("sector", "Sektor"),
    ("province", "Provinsi"),
    ("severity", "Severity"),
    ("case_status", "Status"),
    ("response_hours", "Respon (jam)"),
    ("resolution_days", "Selesai (hari)"),
]

HEADER_ALIASES = {**INCIDENT_COLUMNS, **{label: col for col, label in EXPORT_COLUMNS}}
_HEADER_LOOKUP = {k.lower(): v for k, v in HEADER_ALIASES.items()}

STRING_COLUMNS = [
    "incident_id",
    "incident_date",
    "academic_year",
    "semester",
    "province",
    "sector",
    "major_category",
    "incident_type",
    "location",
    "perpetrator_role",
    "case_status",
    "notes",
    "coordinates",
]
FLOAT_COLUMNS = ["latitude", "longitude", "severity", "response_hours", "resolution_days"]
INCIDENT_FIELDS = list(dict.fromkeys(INCIDENT_COLUMNS.values()))


class DatasetLoadError(Exception):
    """The dataset resource could not be read."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------------- Cleaning helpers ----------------
def drop_duplicate_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[:, ~df.columns.duplicated()]


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col not in df.columns:
            df[col] = ""
        df[col] = df[col].fillna("").astype(str).str.strip()
    return df


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col not in df.columns:
            df[col] = np.nan
            continue
        values = pd.to_numeric(df[col].fillna("").astype(str).str.strip(), errors="coerce").astype(float)
        df[col] = values.where(np.isfinite(values))
    return df


def parse_leading_int(series: pd.Series) -> pd.Series:
    """Integer parse that keeps the leading digits, like `int("2023")` on "2023.9" -> 2023."""
    digits = series.fillna("").astype(str).str.extract(r"^\s*([+-]?\d+)", expand=False)
    num = pd.to_numeric(digits, errors="coerce").astype(float)
    # Beyond 2**53 the float no longer holds an exact integer and cannot be cast.
    return num.where(num.abs() < 2**53).astype("Int64")


def empty_incidents() -> pd.DataFrame:
    df = pd.DataFrame({c: pd.Series(dtype=object) for c in INCIDENT_FIELDS})
    df = coerce_str_safe(df, STRING_COLUMNS)
    df = numericize(df, FLOAT_COLUMNS)
    df["year"] = pd.Series(dtype="Int64")
    return df[INCIDENT_FIELDS]


# ---------------- Parsing ----------------
def _canonical_header(name: object) -> str:
    key = str(name).strip()
    return _HEADER_LOOKUP.get(key.lower(), key)


def parse_incidents(text: str) -> pd.DataFrame:
    """Parse delimited incident text into a typed frame (one row per record).

    Malformed records are kept with best-effort fields; rows with surplus
    fields are truncated and logged.
    """
    text = (text or "").lstrip("\ufeff")
    if not text.strip():
        return empty_incidents()

    def _on_bad_line(fields: List[str]) -> List[str]:
        return fields[:n_header]

    def _read(quoting: int) -> pd.DataFrame:
        return pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            skip_blank_lines=True,
            engine="python",
            index_col=False,
            quoting=quoting,
            on_bad_lines=_on_bad_line,
        )

    # An odd number of quote characters means a quoted field never closes.
    quoting = csv.QUOTE_NONE if text.count('"') % 2 else csv.QUOTE_MINIMAL
    if quoting == csv.QUOTE_NONE:
        logger.warning("CSV parse warnings: unterminated quoted field; reading quotes literally")
    records = [r for r in csv.reader(io.StringIO(text), quoting=quoting) if r]
    n_header = len(records[0]) if records else 0
    bad_lines = sum(1 for record in records[1:] if len(record) > n_header)
    try:
        raw = _read(quoting)
    except pd.errors.ParserError as exc:
        logger.warning("CSV parse warnings: %s; re-reading without quote handling", exc)
        raw = _read(csv.QUOTE_NONE)
    if bad_lines:
        logger.warning("CSV parse warnings: %d malformed row(s) truncated to the header width", bad_lines)

    raw = raw.rename(columns=_canonical_header)
    raw = drop_duplicate_columns(raw)
    unknown = [c for c in raw.columns if c not in INCIDENT_FIELDS]
    if unknown:
        logger.debug("ignoring unknown columns: %s", unknown)
    df = raw[[c for c in raw.columns if c in INCIDENT_FIELDS]].copy()

    df = coerce_str_safe(df, STRING_COLUMNS)
    df = numericize(df, FLOAT_COLUMNS)
    df["year"] = parse_leading_int(df["year"]) if "year" in df.columns else pd.Series(pd.NA, index=df.index, dtype="Int64")

    synthesized = pd.Series([f"incident-{n}" for n in range(1, len(df) + 1)], index=df.index, dtype=object)
    df["incident_id"] = df["incident_id"].where(df["incident_id"] != "", synthesized)
    return df[INCIDENT_FIELDS].reset_index(drop=True)


# ---------------- Loading ----------------
def _is_url(source: str) -> bool:
    return bool(re.match(r"^https?://", source, flags=re.IGNORECASE))


def read_dataset_text(source: str | Path, *, client: Optional[httpx.Client] = None) -> str:
    source = str(source)
    if _is_url(source):
        try:
            if client is not None:
                resp = client.get(source, headers={"Cache-Control": "no-store"})
            else:
                resp = httpx.get(source, headers={"Cache-Control": "no-store"}, timeout=HTTP_TIMEOUT, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise DatasetLoadError(f"Failed to load dataset ({exc})") from exc
        if not resp.is_success:
            raise DatasetLoadError(f"Failed to load dataset ({resp.status_code})")
        payload = resp.content
    else:
        try:
            payload = Path(source).read_bytes()
        except OSError as exc:
            raise DatasetLoadError(f"Failed to load dataset ({exc.strerror or exc})") from exc
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise DatasetLoadError("Failed to load dataset (not valid UTF-8)") from exc


def load_incidents(source: str | Path, *, client: Optional[httpx.Client] = None) -> pd.DataFrame:
    rows = parse_incidents(read_dataset_text(source, client=client))
    logger.info("loaded %d incident rows from %s", len(rows), source)
    return rows


def dataset_source() -> str:
    return os.environ.get(DATASET_ENV) or str(DEFAULT_DATASET)


def source_signature(source: str) -> Tuple[str, float]:
    if _is_url(source):
        return source, 0.0
    try:
        return source, Path(source).stat().st_mtime
    except OSError:
        return source, -1.0


@lru_cache(maxsize=4)
def _load_dashboard_data_cached(signature: Tuple[str, float]) -> Dict[str, object]:
    source, _ = signature
    try:
        rows = load_incidents(source)
    except DatasetLoadError as exc:
        logger.warning("dataset load failed for %s: %s", source, exc.message)
        return {"source": source, "rows": empty_incidents(), "error": exc.message}
    return {"source": source, "rows": rows, "error": None}


def load_dashboard_data(source: Optional[str | Path] = None) -> Dict[str, object]:
    src = str(source) if source else dataset_source()
    return _load_dashboard_data_cached(source_signature(src))


def clear_cache() -> None:
    _load_dashboard_data_cached.cache_clear()


# ---------------- Dates ----------------
def parse_incident_date(value: object) -> Optional[pd.Timestamp]:
    s = "" if value is None else str(value).strip()
    if not s:
        return None
    try:
        ts = pd.to_datetime(s, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts


def incident_dates(rows: pd.DataFrame) -> pd.Series:
    if rows.empty or "incident_date" not in rows.columns:
        return pd.Series(pd.NaT, index=rows.index, dtype="datetime64[ns]")
    raw = rows["incident_date"].fillna("").astype(str)
    parsed = {v: parse_incident_date(v) for v in raw.unique()}
    return pd.to_datetime(raw.map(parsed), errors="coerce")


def format_ymd(value: object) -> str:
    if value is None or pd.isna(value):
        return ""
    ts = value if isinstance(value, pd.Timestamp) else parse_incident_date(value)
    if ts is None or pd.isna(ts):
        return ""
    return ts.strftime("%Y-%m-%d")


def last_updated_date(rows: pd.DataFrame) -> Optional[str]:
    dates = incident_dates(rows).dropna()
    if dates.empty:
        return None
    return dates.max().strftime("%Y-%m-%d")


# ---------------- Options ----------------
def fold_text(value: object) -> str:
    """Diacritic-free casefolded text, used for collation and option search."""
    s = unicodedata.normalize("NFKD", "" if value is None else str(value))
    return "".join(ch for ch in s if not unicodedata.combining(ch)).casefold()


def collation_key(value: str) -> Tuple[str, str]:
    return fold_text(value), value


OPTION_COLUMNS = {"sector": "sector", "province": "province", "status": "case_status"}


def options_for(rows: pd.DataFrame, field: str) -> List[str]:
    column = OPTION_COLUMNS.get(field, field)
    if rows.empty or column not in rows.columns:
        return []
    values = rows[column].fillna("").astype(str).str.strip()
    distinct = [v for v in values.unique().tolist() if v]
    return sorted(distinct, key=collation_key)


def years_in(rows: pd.DataFrame) -> List[int]:
    if rows.empty or "year" not in rows.columns:
        return []
    years = pd.to_numeric(rows["year"], errors="coerce").dropna()
    return sorted({int(y) for y in years})


def filter_options(rows: pd.DataFrame) -> Dict[str, list]:
    return {
        "sector": options_for(rows, "sector"),
        "province": options_for(rows, "province"),
        "year": years_in(rows),
        "category": list(CATEGORY_OPTIONS),
        "status": options_for(rows, "status"),
    }


def search_options(options: Iterable[object], query: str) -> list:
    needle = fold_text(query.strip())
    if not needle:
        return list(options)
    return [o for o in options if needle in fold_text(o)]


# ---------------- Formatting ----------------
def format_int(value: float) -> str:
    n = math.floor(float(value) + 0.5)
    return f"{n:,}".replace(",", ".")


def format_percent(part: float, total: float, digits: int = 1) -> str:
    if not total or not math.isfinite(float(part)):
        return "0%"
    return f"{part / total * 100:.{digits}f}%"


def _format_number(value: object) -> str:
    if value is None or pd.isna(value):
        return ""
    f = float(value)
    if f.is_integer():
        return str(int(f))
    return repr(f)


# ---------------- Export ----------------
def export_frame(rows: pd.DataFrame) -> pd.DataFrame:
    out = pd.DataFrame(index=rows.index)
    for col, label in EXPORT_COLUMNS:
        if col == "incident_date":
            out[label] = incident_dates(rows).map(format_ymd)
        elif col in FLOAT_COLUMNS:
            out[label] = rows[col].map(_format_number) if col in rows.columns else ""
        else:
            out[label] = rows[col].fillna("").astype(str) if col in rows.columns else ""
    return out.reset_index(drop=True)


def export_csv(rows: pd.DataFrame) -> str:
    """Serialize the visible rows with the fixed export header."""
    return export_frame(rows).to_csv(index=False, lineterminator="\n")


# ---------------- Context ----------------
@dataclass(frozen=True)
class DashboardView:
    visible_rows: pd.DataFrame
    raw_row_count: int
    applied_filter_count: int
    last_updated_date: Optional[str]


def build_view(rows: pd.DataFrame, filters: IncidentFilters) -> DashboardView:
    return DashboardView(
        visible_rows=apply_filters(rows, filters),
        raw_row_count=int(len(rows)),
        applied_filter_count=applied_filter_count(filters),
        last_updated_date=last_updated_date(rows),
    )


def prepare_context(filters: dict | IncidentFilters, data_ctx: Dict[str, object]) -> Dict[str, object]:
    rows = data_ctx.get("rows")
    if not isinstance(rows, pd.DataFrame):
        rows = empty_incidents()
    filt = filters if isinstance(filters, IncidentFilters) else normalize_filters(filters)
    view = build_view(rows, filt)
    return {
        "filters": filt,
        "rows": rows,
        "filtered_rows": view.visible_rows,
        "raw_row_count": view.raw_row_count,
        "applied_filter_count": view.applied_filter_count,
        "last_updated": view.last_updated_date,
        "options": filter_options(rows),
        "error": data_ctx.get("error"),
        "view": view,
    }
