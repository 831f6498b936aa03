"""Climate Data Dashboard — FastAPI application."""

import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import router
from app.core.config import settings
from app.core.earth_engine import EarthEngineClient
from app.core.errors import DashboardError, dashboard_error_handler, unhandled_error_handler
from app.core.warehouse import WarehouseClient

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=(
        "REST API for country-level forest loss. Serves KPIs and a history + forecast "
        "series from a BigQuery warehouse, and Hansen Global Forest Change statistics "
        "computed in Google Earth Engine, to the climate dashboard."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Backend clients are created once per process and connect on first use.
app.state.warehouse = WarehouseClient.from_settings(settings)
app.state.earth_engine = EarthEngineClient.from_settings(settings)

app.add_exception_handler(DashboardError, dashboard_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

app.include_router(router, prefix=settings.api_prefix)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "service": "climate-dashboard-api"}


# The forest-loss report is open to any origin, including preflights from
# origins outside CORS_ORIGINS. Registered after CORSMiddleware, so it runs first.
FOREST_LOSS_PATH = f"{settings.api_prefix}/forest-loss"
FOREST_LOSS_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@app.middleware("http")
async def forest_loss_cors(request: Request, call_next):
    if request.url.path != FOREST_LOSS_PATH:
        return await call_next(request)
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=FOREST_LOSS_CORS_HEADERS)
    response = await call_next(request)
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    return response
