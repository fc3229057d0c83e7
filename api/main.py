from __future__ import annotations

from datetime import date
import logging
import math
from typing import Any, Callable, Dict

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from api.schemas import DashboardFiltersModel, MetaOptionsResponse, ReloadResponse
from core.data import DataLoadError, load_dashboard_data, prepare_context, reload_dashboard_data
from core.filters import DashboardFilters, normalize_filters
from core.metrics_crops import compute_crops
from core.metrics_debug import compute_debug
from core.metrics_districts import compute_districts
from core.metrics_overview import compute_overview
from core.metrics_products import compute_products
from core.metrics_retailers import compute_retailers
from core.records import strip_derived


app = FastAPI(title="Yara CBC Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _filters_from_model(model: DashboardFiltersModel) -> DashboardFilters:
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


def _error(exc: Exception, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _page(name: str, compute: Callable[[DashboardFilters, Dict[str, Any]], Dict[str, Any]], filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute(f, ctx))
    except DataLoadError as exc:
        logger.exception("%s failed: primary data unavailable", name)
        return _error(exc, 503)
    except Exception as exc:
        logger.exception("%s failed", name)
        return _error(exc, 500)


@app.get("/meta/options", response_model=MetaOptionsResponse)
def meta_options():
    try:
        data_ctx = load_dashboard_data()
        return _json(data_ctx.get("options", {}))
    except DataLoadError as exc:
        logger.exception("meta_options failed: primary data unavailable")
        return _error(exc, 503)
    except Exception as exc:
        logger.exception("meta_options failed")
        return _error(exc, 500)


@app.post("/reload", response_model=ReloadResponse)
def reload():
    try:
        data_ctx = reload_dashboard_data()
        registry = data_ctx["registry"]
        return _json(
            {
                "records": int(len(data_ctx["records"])),
                "awards": len(registry),
                "total_cashback": registry.total_cashback(),
                "files": data_ctx.get("files", []),
                "catalog": {p.name: p.budget for p in data_ctx["catalog"]},
            }
        )
    except DataLoadError as exc:
        logger.exception("reload failed: primary data unavailable")
        return _error(exc, 503)
    except Exception as exc:
        logger.exception("reload failed")
        return _error(exc, 500)


@app.post("/overview")
def overview(filters: DashboardFiltersModel):
    return _page("overview", compute_overview, filters)


@app.post("/products")
def products(filters: DashboardFiltersModel):
    return _page("products", compute_products, filters)


@app.post("/districts")
def districts(filters: DashboardFiltersModel):
    return _page("districts", compute_districts, filters)


@app.post("/retailers")
def retailers(filters: DashboardFiltersModel):
    return _page("retailers", compute_retailers, filters)


@app.post("/crops")
def crops(filters: DashboardFiltersModel):
    return _page("crops", compute_crops, filters)


@app.post("/debug")
def debug(filters: DashboardFiltersModel):
    return _page("debug", compute_debug, filters)


@app.post("/export")
def export(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
    except DataLoadError as exc:
        logger.exception("export failed: primary data unavailable")
        return _error(exc, 503)
    f = _filters_from_model(filters)
    ctx = prepare_context(f, data_ctx)

    export_df = strip_derived(ctx["filtered"])
    filename = f"yara_dashboard_export_{date.today().isoformat()}.csv"
    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
