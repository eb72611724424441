from __future__ import annotations

import logging
import math
import re
import unicodedata
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import altair as alt
import pandas as pd

from incidents.charts import to_vega_spec
from incidents.filters import IncidentFilters

logger = logging.getLogger(__name__)

LatLon = Tuple[float, float]
Bounds = Tuple[LatLon, LatLon]

DEFAULT_CENTER: LatLon = (-2.5489, 118.0149)
# SW / NE corners of Indonesia
DEFAULT_BOUNDS: Bounds = ((-12.0, 94.0), (6.0, 141.0))
BOUNDS_PADDING = 0.5

PROVINCE_ALIASES = {
    "dki jakarta": "jakarta",
    "daerah khusus ibukota jakarta": "jakarta",
    "di yogyakarta": "yogyakarta",
    "d i yogyakarta": "yogyakarta",
    "daerah istimewa yogyakarta": "yogyakarta",
    "diy": "yogyakarta",
    "kepulauan bangka belitung": "bangka belitung",
    "kep bangka belitung": "bangka belitung",
    "kepulauan riau": "kepri",
    "kep riau": "kepri",
    "ntt": "nusa tenggara timur",
    "ntb": "nusa tenggara barat",
}

# Approximate province centroids, good enough for aggregate plotting.
PROVINCE_CENTROIDS: Dict[str, LatLon] = {
    "aceh": (4.695, 96.749),
    "sumatera utara": (2.115, 99.545),
    "sumatera barat": (-0.739, 100.8),
    "riau": (0.51, 101.438),
    "kepri": (3.945, 108.142),
    "jambi": (-1.61, 103.612),
    "sumatera selatan": (-3.319, 104.914),
    "bengkulu": (-3.518, 102.535),
    "lampung": (-4.558, 105.406),
    "bangka belitung": (-2.322, 106.09),
    "jakarta": (-6.2, 106.816),
    "jawa barat": (-6.889, 107.64),
    "jawa tengah": (-7.15, 110.14),
    "yogyakarta": (-7.795, 110.369),
    "jawa timur": (-7.536, 112.238),
    "banten": (-6.405, 106.064),
    "bali": (-8.455, 115.195),
    "nusa tenggara barat": (-8.652, 117.361),
    "nusa tenggara timur": (-9.007, 124.125),
    "kalimantan barat": (0.132, 111.096),
    "kalimantan tengah": (-1.618, 113.382),
    "kalimantan selatan": (-3.092, 115.283),
    "kalimantan timur": (0.537, 116.419),
    "kalimantan utara": (3.014, 116.002),
    "sulawesi utara": (1.493, 124.845),
    "sulawesi tengah": (-1.43, 121.445),
    "sulawesi selatan": (-3.668, 119.974),
    "sulawesi tenggara": (-4.144, 122.174),
    "gorontalo": (0.699, 122.446),
    "sulawesi barat": (-2.512, 119.325),
    "maluku": (-3.118, 129.463),
    "maluku utara": (1.57, 127.808),
    "papua": (-4.269, 138.08),
    "papua barat": (-1.336, 133.174),
    "papua barat daya": (-0.869, 131.26),
    "papua selatan": (-6.234, 140.311),
    "papua tengah": (-3.777, 137.001),
    "papua pegunungan": (-4.1, 138.7),
}

_NUMBER = r"-?\d+(?:[.,]\d+)?"
_PAIR_RE = re.compile(rf"^\s*({_NUMBER})\s*[,;]\s*({_NUMBER})\s*$")


def _finite(value: object) -> Optional[float]:
    try:
        f = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def parse_coordinate(value: object) -> Optional[float]:
    """'-6,214 ' -> -6.214, '(106.8)' -> 106.8"""
    if value is None:
        return None
    s = re.sub(r"[()\[\]]", "", str(value)).strip().replace(",", ".")
    if not s:
        return None
    return _finite(s)


def parse_coordinate_pair(value: object) -> Optional[LatLon]:
    if value is None:
        return None
    s = re.sub(r"[()\[\]]", "", str(value)).strip()
    if not s:
        return None
    if ";" in s:
        parts = s.split(";")
        if len(parts) != 2:
            return None
        lat, lon = parse_coordinate(parts[0]), parse_coordinate(parts[1])
    else:
        m = _PAIR_RE.match(s)
        if not m:
            return None
        lat, lon = parse_coordinate(m.group(1)), parse_coordinate(m.group(2))
    if lat is None or lon is None:
        return None
    return lat, lon


def normalize_province(value: object) -> str:
    s = unicodedata.normalize("NFKD", "" if value is None else str(value))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = re.sub(r"[^a-z0-9 ]", " ", s, flags=re.IGNORECASE)
    key = re.sub(r"\s+", " ", s).strip().lower()
    return PROVINCE_ALIASES.get(key, key)


# ---------------- Resolver chain ----------------
def resolve_explicit(row: Mapping[str, Any]) -> Optional[LatLon]:
    lat, lon = _finite(row.get("latitude")), _finite(row.get("longitude"))
    if lat is None or lon is None:
        return None
    return lat, lon


def resolve_combined(row: Mapping[str, Any]) -> Optional[LatLon]:
    return parse_coordinate_pair(row.get("coordinates"))


def resolve_province_centroid(row: Mapping[str, Any]) -> Optional[LatLon]:
    key = normalize_province(row.get("province"))
    if not key:
        return None
    return PROVINCE_CENTROIDS.get(key)


Resolver = Callable[[Mapping[str, Any]], Optional[LatLon]]

RESOLVERS: Sequence[Tuple[str, Resolver]] = (
    ("explicit", resolve_explicit),
    ("combined", resolve_combined),
    ("province", resolve_province_centroid),
)


def resolve_coordinate(row: Mapping[str, Any]) -> Optional[Tuple[LatLon, str]]:
    """First resolver that yields a coordinate wins; None means unresolved."""
    for name, resolver in RESOLVERS:
        pos = resolver(row)
        if pos is not None:
            return pos, name
    return None


# ---------------- Marker styling ----------------
def severity_color(severity: object) -> str:
    s = _finite(severity)
    if s is None:
        return "#8ab4ff"
    if s >= 5:
        return "#ff4d8d"
    if s >= 4:
        return "#ff8ad8"
    if s >= 3:
        return "#ffd88a"
    return "#8ab4ff"


def severity_radius(severity: object) -> int:
    s = _finite(severity)
    if s is None:
        return 7
    return 6 + max(1, min(5, math.floor(s + 0.5)))


def geographic_points(rows: pd.DataFrame) -> List[Dict[str, Any]]:
    points: List[Dict[str, Any]] = []
    if rows.empty:
        return points
    for record in rows.to_dict(orient="records"):
        resolved = resolve_coordinate(record)
        if resolved is None:
            continue
        (lat, lon), source = resolved
        severity = _finite(record.get("severity"))
        points.append(
            {
                "id": str(record.get("incident_id") or f"{record.get('province', '')}-{record.get('incident_type', '')}"),
                "lat": lat,
                "lon": lon,
                "source": source,
                "province": record.get("province") or "Tidak diketahui",
                "category": record.get("major_category") or "-",
                "severity": severity,
                "color": severity_color(severity),
                "radius": severity_radius(severity),
            }
        )
    return points


def bounding_extent(points: Sequence[Mapping[str, Any]], *, pad: float = BOUNDS_PADDING) -> Bounds:
    if not points:
        return DEFAULT_BOUNDS
    lats = [float(p["lat"]) for p in points]
    lons = [float(p["lon"]) for p in points]
    return (min(lats) - pad, min(lons) - pad), (max(lats) + pad, max(lons) + pad)


def compute_map(filters: IncidentFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("filtered_rows", pd.DataFrame())
    points = geographic_points(rows)
    bounds = bounding_extent(points)
    if len(rows):
        logger.debug("map rows: %d, resolved coordinates (incl. province fallback): %d", len(rows), len(points))

    charts: Dict[str, Any] = {}
    if points:
        df = pd.DataFrame(points)
        markers = (
            alt.Chart(df)
            .mark_circle(opacity=0.85, stroke="white", strokeWidth=0.6)
            .encode(
                longitude="lon:Q",
                latitude="lat:Q",
                size=alt.Size("radius:Q", legend=None, scale=alt.Scale(range=[60, 180])),
                color=alt.Color("color:N", scale=None),
                tooltip=[
                    alt.Tooltip("province:N", title="Provinsi"),
                    alt.Tooltip("category:N", title="Kategori"),
                    alt.Tooltip("severity:Q", title="Severity"),
                ],
            )
            .project(type="mercator")
        )
        charts["map"] = to_vega_spec(markers)

    return {
        "filters": asdict(filters),
        "points": points,
        "bounds": [list(bounds[0]), list(bounds[1])],
        "center": list(DEFAULT_CENTER),
        "counts": {"rows": int(len(rows)), "resolved": len(points), "dropped": int(len(rows)) - len(points)},
        "charts": charts,
    }
