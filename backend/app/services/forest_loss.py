"""Forest loss KPIs and history/forecast series from the BigQuery warehouse.

The warehouse holds a yearly loss view (one row per country and year, keyed by
``ds``) and a 15-year forecast table with prediction bounds. All aggregation
happens in SQL; this module builds the queries and shapes the rows.
"""

import logging
import math
from datetime import UTC, datetime
from typing import Any

from app.core.config import settings
from app.core.warehouse import WarehouseClient
from app.schemas.forest import KPISummary, TimeseriesResponse, YearlyLossRow

logger = logging.getLogger(__name__)

QueryParams = dict[str, Any]


def data_source_label(
    yearly_table: str | None = None, forecast_table: str | None = None
) -> str:
    yearly_table = yearly_table or settings.forest_loss_yearly_table
    forecast_table = forecast_table or settings.forest_loss_forecast_table
    return f"BigQuery {yearly_table} + {forecast_table}"


def build_kpi_query(
    country: str, yearly_table: str | None = None, forecast_table: str | None = None
) -> tuple[str, QueryParams]:
    """KPI query: last observed loss, 5y windows, their delta and the forecast total."""
    yearly_table = yearly_table or settings.forest_loss_yearly_table
    forecast_table = forecast_table or settings.forest_loss_forecast_table
    sql = f"""
        WITH last_obs AS (
            SELECT country, MAX(ds) AS last_ds
            FROM `{yearly_table}`
            WHERE country = :country
            GROUP BY country
        ),
        hist AS (
            SELECT h.country, h.ds, h.loss_km2
            FROM `{yearly_table}` h
            JOIN last_obs lo USING (country)
        ),
        recent5 AS (
            SELECT AVG(loss_km2) AS avg_recent5
            FROM hist, last_obs lo
            WHERE ds > DATE_SUB(lo.last_ds, INTERVAL 5 YEAR)
        ),
        prev5 AS (
            SELECT AVG(loss_km2) AS avg_prev5
            FROM hist, last_obs lo
            WHERE ds BETWEEN DATE_SUB(lo.last_ds, INTERVAL 10 YEAR)
                         AND DATE_SUB(lo.last_ds, INTERVAL 5 YEAR)
        ),
        next15 AS (
            SELECT SUM(loss_km2_pred) AS sum_next15
            FROM `{forecast_table}`
            WHERE country = :country
        )
        SELECT
            (SELECT loss_km2 FROM hist ORDER BY ds DESC LIMIT 1) AS last_year_km2,
            (SELECT avg_recent5 FROM recent5) AS avg_recent5,
            (SELECT avg_prev5 FROM prev5) AS avg_prev5,
            SAFE_DIVIDE(
                (SELECT avg_recent5 FROM recent5) - (SELECT avg_prev5 FROM prev5),
                (SELECT avg_prev5 FROM prev5)
            ) AS delta_pct_5y,
            (SELECT sum_next15 FROM next15) AS forecast_15y_total_km2
    """  # noqa: S608
    return sql, {"country": country}


def build_timeseries_query(
    country: str, yearly_table: str | None = None, forecast_table: str | None = None
) -> tuple[str, QueryParams]:
    """History rows UNION ALL forecast rows, same columns, ordered by date.

    Which columns are NULL tells the consumer whether a point is observed
    history or forecast.
    """
    yearly_table = yearly_table or settings.forest_loss_yearly_table
    forecast_table = forecast_table or settings.forest_loss_forecast_table
    sql = f"""
        WITH hist AS (
            SELECT
                country,
                ds,
                loss_km2,
                CAST(NULL AS FLOAT64) AS loss_km2_pred,
                CAST(NULL AS FLOAT64) AS loss_km2_lo,
                CAST(NULL AS FLOAT64) AS loss_km2_hi
            FROM `{yearly_table}`
            WHERE country = :country
        ),
        fc AS (
            SELECT
                country,
                ds,
                CAST(NULL AS FLOAT64) AS loss_km2,
                loss_km2_pred,
                loss_km2_lo,
                loss_km2_hi
            FROM `{forecast_table}`
            WHERE country = :country
        )
        SELECT * FROM hist
        UNION ALL
        SELECT * FROM fc
        ORDER BY ds
    """  # noqa: S608
    return sql, {"country": country}


def _finite_or_none(value: Any) -> float | None:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def delta_pct(avg_recent5: float | None, avg_prev5: float | None) -> float | None:
    """Relative change between the 5y windows; None instead of a division by zero."""
    if avg_recent5 is None or not avg_prev5:
        return None
    return _finite_or_none((avg_recent5 - avg_prev5) / avg_prev5)


async def get_kpis(warehouse: WarehouseClient, country: str) -> KPISummary:
    """Headline KPIs for a country. All fields are null when it has no data."""
    sql, params = build_kpi_query(country)
    logger.info(f"Querying KPIs for {country}")
    rows = await warehouse.query(sql, params)
    if not rows:
        return KPISummary()

    row = rows[0]
    avg_recent5 = _finite_or_none(row.get("avg_recent5"))
    avg_prev5 = _finite_or_none(row.get("avg_prev5"))
    delta = _finite_or_none(row.get("delta_pct_5y"))
    if delta is None:
        delta = delta_pct(avg_recent5, avg_prev5)
    return KPISummary(
        last_year_km2=_finite_or_none(row.get("last_year_km2")),
        avg_recent5=avg_recent5,
        avg_prev5=avg_prev5,
        delta_pct_5y=delta,
        forecast_15y_total_km2=_finite_or_none(row.get("forecast_15y_total_km2")),
    )


async def get_timeseries(warehouse: WarehouseClient, country: str) -> TimeseriesResponse:
    """History + forecast series for a country, ascending by date."""
    sql, params = build_timeseries_query(country)
    logger.info(f"Querying loss timeseries for {country}")
    rows = await warehouse.query(sql, params)

    data = [YearlyLossRow(**r) for r in rows]
    # already ordered in SQL; the stable sort keeps the warehouse order on equal dates
    data.sort(key=lambda r: r.ds)
    return TimeseriesResponse(
        data=data,
        country=country,
        count=len(data),
        timestamp=datetime.now(UTC),
        data_source=data_source_label(),
    )
