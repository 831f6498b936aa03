"""Pydantic schemas for API requests and responses."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ── Request parameters ──────────────────────────────────────────────────────


class ForestLossQuery(BaseModel):
    """Validated parameters for a forest loss report."""

    model_config = ConfigDict(frozen=True)

    country: str
    start_year: int
    end_year: int
    include_cover: bool = False


# ── Warehouse ───────────────────────────────────────────────────────────────


class KPISummary(BaseModel):
    """Headline forest-loss metrics for one country."""

    last_year_km2: float | None = Field(default=None, description="Loss in the last observed year")
    avg_recent5: float | None = Field(default=None, description="Mean yearly loss, last 5 years")
    avg_prev5: float | None = Field(default=None, description="Mean yearly loss, 5 years before")
    delta_pct_5y: float | None = Field(
        default=None,
        description="(avg_recent5 - avg_prev5) / avg_prev5; null when avg_prev5 is 0 or null",
    )
    forecast_15y_total_km2: float | None = Field(
        default=None, description="Sum of predicted loss over the 15-year forecast"
    )


class YearlyLossRow(BaseModel):
    """One point of the history + forecast series.

    History rows carry ``loss_km2``; forecast rows carry the prediction and
    its bounds. Exactly one of the two groups is populated.
    """

    country: str
    ds: date
    loss_km2: float | None = None
    loss_km2_pred: float | None = None
    loss_km2_lo: float | None = None
    loss_km2_hi: float | None = None


class TimeseriesResponse(BaseModel):
    data: list[YearlyLossRow]
    country: str
    count: int
    timestamp: datetime
    data_source: str


# ── Earth Engine ────────────────────────────────────────────────────────────


class YearlyLoss(BaseModel):
    year: int
    loss_km2: float


class ForestLossReport(BaseModel):
    """Forest loss computed from the Hansen loss-year band."""

    country: str
    total_loss_km2: float
    yearly_data: list[YearlyLoss]
    start_year: int
    end_year: int
    timestamp: datetime


class ForestCoverReport(BaseModel):
    """Tree canopy area in 2000 from the Hansen treecover2000 band."""

    country: str
    forest_cover_2000_km2: float
    timestamp: datetime


class DatasetStats(BaseModel):
    """Result of reducing an arbitrary Earth Engine image over a country."""

    country: str
    dataset: str
    bands: list[str]
    reducer: str
    scale: float
    data: dict[str, Any]
    timestamp: datetime


class ForestLossData(BaseModel):
    forest_loss: ForestLossReport
    forest_cover: ForestCoverReport | None = None


class ForestLossMetadata(BaseModel):
    country: str
    start_year: int
    end_year: int
    include_cover: bool
    data_source: str
    timestamp: datetime


class ForestLossResponse(BaseModel):
    success: bool = True
    data: ForestLossData
    metadata: ForestLossMetadata


# ── Health checks ───────────────────────────────────────────────────────────


class ConnectionCheck(BaseModel):
    """Outcome of a backend connectivity probe. Never raised, always returned."""

    success: bool
    error: str | None = None
    data: list[dict[str, Any]] | None = None


class GeeStatus(BaseModel):
    success: bool
    message: str
    timestamp: datetime
    status: str = Field(description="connected or error")
    error: str | None = None


class WarehouseStatus(BaseModel):
    success: bool
    timestamp: datetime
    message: str | None = None
    test_data: list[dict[str, Any]] | None = None
    error: str | None = None
