from __future__ import annotations

from dataclasses import asdict
import logging
import math
from typing import Literal, Optional

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from api.schemas import IncidentFiltersModel, MetaOptionsResponse, SummaryResponse
from incidents.data import export_csv, filter_options, load_dashboard_data, prepare_context
from incidents.filters import IncidentFilters, normalize_filters
from incidents.metrics_distribution import compute_distribution
from incidents.metrics_geo import compute_map
from incidents.metrics_overview import compute_overview
from incidents.metrics_response import compute_response
from incidents.metrics_table import DEFAULT_SORT, compute_table
from incidents.metrics_trend import compute_trend


app = FastAPI(title="Incident Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

EXPORT_FILENAME = "dashboard-insiden.csv"


def _filters_from_model(model: IncidentFiltersModel) -> IncidentFilters:
    return normalize_filters(model.model_dump())


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/meta/options", response_model=MetaOptionsResponse)
def meta_options():
    try:
        data_ctx = load_dashboard_data()
        rows = data_ctx.get("rows")
        if not isinstance(rows, pd.DataFrame):
            return _json({"sector": [], "province": [], "year": [], "category": [], "status": []})
        return _json(filter_options(rows))
    except Exception as exc:
        logger.exception("meta_options failed")
        return _error(exc)


@app.post("/summary", response_model=SummaryResponse)
def summary(filters: IncidentFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(
            {
                "filters": asdict(f),
                "raw_row_count": ctx["raw_row_count"],
                "visible_row_count": int(len(ctx["filtered_rows"])),
                "applied_filter_count": ctx["applied_filter_count"],
                "last_updated_date": ctx["last_updated"],
                "error": ctx["error"],
            }
        )
    except Exception as exc:
        logger.exception("summary failed")
        return _error(exc)


@app.post("/overview")
def overview(filters: IncidentFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_overview(f, ctx))
    except Exception as exc:
        logger.exception("overview failed")
        return _error(exc)


@app.post("/distribution")
def distribution(filters: IncidentFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_distribution(f, ctx))
    except Exception as exc:
        logger.exception("distribution failed")
        return _error(exc)


@app.post("/trend")
def trend(filters: IncidentFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_trend(f, ctx))
    except Exception as exc:
        logger.exception("trend failed")
        return _error(exc)


@app.post("/response")
def response_times(filters: IncidentFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_response(f, ctx))
    except Exception as exc:
        logger.exception("response failed")
        return _error(exc)


@app.post("/map")
def incident_map(filters: IncidentFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_map(f, ctx))
    except Exception as exc:
        logger.exception("map failed")
        return _error(exc)


@app.post("/table")
def table(
    filters: IncidentFiltersModel,
    sort_key: str = Query(default=DEFAULT_SORT),
    direction: Optional[Literal["asc", "desc"]] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=500),
):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_table(f, ctx, sort_key=sort_key, direction=direction, page=page, page_size=page_size))
    except Exception as exc:
        logger.exception("table failed")
        return _error(exc)


@app.post("/export")
def export(filters: IncidentFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        csv_bytes = export_csv(ctx["filtered_rows"]).encode("utf-8")
    except Exception as exc:
        logger.exception("export failed")
        return _error(exc)
    return Response(
        content=csv_bytes,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={EXPORT_FILENAME}"},
    )
