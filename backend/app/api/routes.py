"""API routes for warehouse KPIs, Earth Engine forest reports and health checks."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.api.validation import country_or_default, require_country, validate_forest_loss_query
from app.core.config import settings
from app.core.earth_engine import EarthEngineClient, get_earth_engine
from app.core.errors import error_response
from app.core.warehouse import WarehouseClient, get_warehouse
from app.schemas.forest import (
    DatasetStats,
    ForestLossResponse,
    GeeStatus,
    KPISummary,
    TimeseriesResponse,
    WarehouseStatus,
)
from app.services import forest_loss, geo_analysis, reports

logger = logging.getLogger(__name__)

router = APIRouter()

# ── Warehouse ───────────────────────────────────────────────────────────────


@router.get("/kpis", response_model=KPISummary)
async def kpis(
    request: Request,
    country: str | None = Query(default=None, description="Country name, e.g. Brazil"),
    warehouse: WarehouseClient = Depends(get_warehouse),
) -> KPISummary:
    """Last-year loss, 5-year averages and delta, and the 15-year forecast total."""
    name = country_or_default(country, settings.default_country)
    request.state.country = name
    return await forest_loss.get_kpis(warehouse, name)


@router.get("/timeseries", response_model=TimeseriesResponse)
async def timeseries(
    request: Request,
    country: str | None = Query(default=None, description="Country name, e.g. Brazil"),
    warehouse: WarehouseClient = Depends(get_warehouse),
) -> TimeseriesResponse:
    """Observed yearly loss followed by the forecast, ascending by date.

    History points carry ``loss_km2``; forecast points carry ``loss_km2_pred``
    with ``loss_km2_lo`` / ``loss_km2_hi`` bounds.
    """
    name = country_or_default(country, settings.default_country)
    request.state.country = name
    return await forest_loss.get_timeseries(warehouse, name)


# ── Earth Engine ────────────────────────────────────────────────────────────


@router.get("/forest-loss", response_model=ForestLossResponse)
async def forest_loss_report(
    country: str | None = Query(default=None),
    start_year: str | None = Query(default=None, alias="startYear"),
    end_year: str | None = Query(default=None, alias="endYear"),
    include_cover: str | None = Query(default=None, alias="includeCover"),
    gee: EarthEngineClient = Depends(get_earth_engine),
) -> ForestLossResponse | JSONResponse:
    """Forest loss (and optionally 2000 tree cover) for a country from Hansen GFC.

    Years default to 2001-2023. Cover data is best effort: if it fails the
    report is still returned with ``forest_cover: null``.
    """
    query = validate_forest_loss_query(country, start_year, end_year, include_cover)
    logger.info(
        f"Processing forest loss request for {query.country} "
        f"({query.start_year}-{query.end_year})"
    )
    try:
        return await reports.build_forest_loss_report(gee, query)
    except Exception as e:
        logger.exception(f"Forest loss request for {query.country} failed")
        return error_response(e, country=query.country)


@router.get("/dataset-stats", response_model=DatasetStats)
async def dataset_stats(
    request: Request,
    dataset: str = Query(description="Earth Engine image id"),
    country: str | None = Query(default=None),
    bands: str = Query(description="Comma-separated band names"),
    reducer: str = Query(default="sum", description="sum, mean, median, min, max or stddev"),
    scale: float = Query(default=1000, gt=0, description="Resolution in meters"),
    gee: EarthEngineClient = Depends(get_earth_engine),
) -> DatasetStats:
    """Reduce selected bands of any Earth Engine image over a country."""
    name = require_country(country)
    request.state.country = name
    band_list = [b.strip() for b in bands.split(",") if b.strip()]
    return await geo_analysis.query_dataset(gee, dataset, name, band_list, reducer, scale)


# ── Health checks ───────────────────────────────────────────────────────────


@router.get("/gee-test", response_model=GeeStatus, response_model_exclude_none=True)
async def gee_test(
    gee: EarthEngineClient = Depends(get_earth_engine),
) -> GeeStatus | JSONResponse:
    """Check that Earth Engine is reachable with the configured service account."""
    logger.info("Testing Earth Engine connection")
    result = await geo_analysis.check_connection(gee)
    if result.success:
        return GeeStatus(
            success=True,
            message="Earth Engine connection successful",
            timestamp=datetime.now(UTC),
            status="connected",
        )
    status = GeeStatus(
        success=False,
        error=result.error,
        message="Earth Engine connection failed",
        timestamp=datetime.now(UTC),
        status="error",
    )
    return JSONResponse(
        status_code=500, content=status.model_dump(mode="json", exclude_none=True)
    )


@router.get(
    "/test-connection", response_model=WarehouseStatus, response_model_exclude_none=True
)
async def warehouse_connection(
    warehouse: WarehouseClient = Depends(get_warehouse),
) -> WarehouseStatus | JSONResponse:
    """Check that BigQuery answers a trivial query."""
    result = await warehouse.check_connection()
    if result.success:
        return WarehouseStatus(
            success=True,
            message="BigQuery connection successful",
            timestamp=datetime.now(UTC),
            test_data=result.data,
        )
    status = WarehouseStatus(success=False, error=result.error, timestamp=datetime.now(UTC))
    return JSONResponse(
        status_code=500, content=status.model_dump(mode="json", exclude_none=True)
    )
