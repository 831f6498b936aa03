"""Forest statistics from Google Earth Engine.

Each public coroutine wraps a blocking function that builds an Earth Engine
expression and evaluates it with ``getInfo()``. The blocking part runs through
``EarthEngineClient.run`` so it happens off the event loop, after the session
is initialized.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import ee

from app.core.earth_engine import EarthEngineClient
from app.core.errors import NotFoundError, UnsupportedReducerError
from app.schemas.forest import (
    ConnectionCheck,
    DatasetStats,
    ForestCoverReport,
    ForestLossReport,
    YearlyLoss,
)

logger = logging.getLogger(__name__)

HANSEN_DATASET = "UMD/hansen/global_forest_change_2023_v1_11"
DATA_SOURCE = "Hansen Global Forest Change v1.11 (2023)"
COUNTRY_BOUNDARIES = "USDOS/LSIB_SIMPLE/2017"
COUNTRY_NAME_PROPERTY = "COUNTRY_NA"

# lossyear encodes the year of loss as an offset from 2000 (1 = 2001)
LOSS_YEAR_EPOCH = 2000
HANSEN_SCALE_M = 30
MAX_PIXELS = 1e13
M2_PER_KM2 = 1e6

CONNECTION_TEST_IMAGE = "COPERNICUS/S2_SR/20210101T100319_20210101T100321_T32UPA"

REDUCERS: dict[str, Callable[[], Any]] = {
    "sum": lambda: ee.Reducer.sum(),
    "mean": lambda: ee.Reducer.mean(),
    "median": lambda: ee.Reducer.median(),
    "min": lambda: ee.Reducer.min(),
    "max": lambda: ee.Reducer.max(),
    "stddev": lambda: ee.Reducer.stdDev(),
}


def normalize_reducer(name: str) -> str:
    """Canonical reducer name. Unknown names are rejected rather than read as sum."""
    key = name.strip().lower()
    if key not in REDUCERS:
        raise UnsupportedReducerError(name, sorted(REDUCERS))
    return key


def get_reducer(name: str) -> Any:
    """Map a reducer name to an ``ee.Reducer``. Needs an initialized session."""
    return REDUCERS[normalize_reducer(name)]()


def _pixel_area_km2() -> Any:
    return ee.Image.pixelArea().divide(M2_PER_KM2)


def _country_collection(country: str) -> Any:
    countries = ee.FeatureCollection(COUNTRY_BOUNDARIES)
    matched = countries.filter(ee.Filter.eq(COUNTRY_NAME_PROPERTY, country))
    if matched.size().getInfo() == 0:
        raise NotFoundError(f'Country "{country}" not found in the dataset')
    return matched


def _reduce(image: Any, reducer: Any, region: Any, scale: float, max_pixels: float) -> dict:
    stats = image.reduceRegion(
        reducer=reducer,
        geometry=region,
        scale=scale,
        maxPixels=max_pixels,
        bestEffort=True,
    )
    return stats.getInfo() or {}


async def resolve_country_boundary(client: EarthEngineClient, country: str) -> Any:
    """Country polygon(s) from the LSIB boundaries, matched on the exact name."""
    return await client.run(_country_collection, country)


async def reduce_region(
    client: EarthEngineClient,
    dataset_id: str,
    bands: list[str],
    reducer: str,
    region: Any,
    scale: float,
    max_pixels: float = MAX_PIXELS,
) -> dict[str, Any]:
    """Reduce the selected bands (plus a km² pixel-area band) over ``region``."""
    reducer = normalize_reducer(reducer)

    def _run() -> dict[str, Any]:
        image = ee.Image(dataset_id).select(bands).addBands(_pixel_area_km2())
        return _reduce(image, get_reducer(reducer), region, scale, max_pixels)

    return await client.run(_run)


def _forest_loss(country: str, start_year: int, end_year: int) -> ForestLossReport:
    region = _country_collection(country).geometry()
    loss_year = ee.Image(HANSEN_DATASET).select("lossyear")
    in_range = loss_year.gte(start_year - LOSS_YEAR_EPOCH).And(
        loss_year.lte(end_year - LOSS_YEAR_EPOCH)
    )
    loss_area = _pixel_area_km2().rename("area").updateMask(in_range)

    totals = _reduce(loss_area, ee.Reducer.sum(), region, HANSEN_SCALE_M, MAX_PIXELS)

    # bucket 0 is start_year
    bucket = loss_year.subtract(start_year - LOSS_YEAR_EPOCH).rename("bucket")
    grouped = _reduce(
        loss_area.addBands(bucket),
        ee.Reducer.sum().group(groupField=1, groupName="bucket"),
        region,
        HANSEN_SCALE_M,
        MAX_PIXELS,
    )
    yearly = sorted(
        (
            YearlyLoss(year=start_year + int(g["bucket"]), loss_km2=g.get("sum") or 0.0)
            for g in grouped.get("groups", [])
        ),
        key=lambda y: y.year,
    )

    return ForestLossReport(
        country=country,
        total_loss_km2=totals.get("area") or 0.0,
        yearly_data=yearly,
        start_year=start_year,
        end_year=end_year,
        timestamp=datetime.now(UTC),
    )


async def get_forest_loss_data(
    client: EarthEngineClient, country: str, start_year: int = 2001, end_year: int = 2023
) -> ForestLossReport:
    """Total and per-year forest loss area (km²) for a country."""
    logger.info(f"Querying forest loss data for {country} ({start_year}-{end_year})")
    return await client.run(_forest_loss, country, start_year, end_year)


def _forest_cover(country: str) -> ForestCoverReport:
    region = _country_collection(country).geometry()
    canopy_fraction = ee.Image(HANSEN_DATASET).select("treecover2000").divide(100)
    canopy_area = _pixel_area_km2().multiply(canopy_fraction).rename("canopy")
    stats = _reduce(canopy_area, ee.Reducer.sum(), region, HANSEN_SCALE_M, MAX_PIXELS)
    return ForestCoverReport(
        country=country,
        forest_cover_2000_km2=stats.get("canopy") or 0.0,
        timestamp=datetime.now(UTC),
    )


async def get_forest_cover_data(client: EarthEngineClient, country: str) -> ForestCoverReport:
    """Tree canopy area in 2000 (km²), weighting each pixel by its cover percentage."""
    logger.info(f"Querying forest cover data for {country}")
    return await client.run(_forest_cover, country)


async def query_dataset(
    client: EarthEngineClient,
    dataset_id: str,
    country: str,
    bands: list[str],
    reducer: str = "sum",
    scale: float = 1000,
) -> DatasetStats:
    """Reduce any single-image dataset over a country."""
    reducer = normalize_reducer(reducer)
    logger.info(f"Querying dataset {dataset_id} for {country}")
    boundary = await resolve_country_boundary(client, country)
    data = await reduce_region(client, dataset_id, bands, reducer, boundary.geometry(), scale)
    return DatasetStats(
        country=country,
        dataset=dataset_id,
        bands=bands,
        reducer=reducer,
        scale=scale,
        data=data,
        timestamp=datetime.now(UTC),
    )


def _probe() -> dict:
    image = ee.Image(CONNECTION_TEST_IMAGE).select("B4")
    return _reduce(
        image, ee.Reducer.count(), ee.Geometry.Point([0, 0]).buffer(1000), 10, 1e9
    )


async def check_connection(client: EarthEngineClient) -> ConnectionCheck:
    """Evaluate a tiny fixed query. Failures are reported, never raised."""
    try:
        await client.run(_probe)
    except Exception as e:
        logger.warning(f"Earth Engine connection test failed: {e}")
        return ConnectionCheck(success=False, error=str(e))
    return ConnectionCheck(success=True)
