"""Assembles the combined forest loss report from Earth Engine results."""

import logging
from datetime import UTC, datetime

from app.core.earth_engine import EarthEngineClient
from app.schemas.forest import (
    ForestCoverReport,
    ForestLossData,
    ForestLossMetadata,
    ForestLossQuery,
    ForestLossReport,
    ForestLossResponse,
)
from app.services import geo_analysis

logger = logging.getLogger(__name__)


def assemble_forest_loss_response(
    query: ForestLossQuery,
    forest_loss: ForestLossReport,
    forest_cover: ForestCoverReport | None,
    data_source: str = geo_analysis.DATA_SOURCE,
) -> ForestLossResponse:
    return ForestLossResponse(
        success=True,
        data=ForestLossData(forest_loss=forest_loss, forest_cover=forest_cover),
        metadata=ForestLossMetadata(
            country=query.country,
            start_year=query.start_year,
            end_year=query.end_year,
            include_cover=query.include_cover,
            data_source=data_source,
            timestamp=datetime.now(UTC),
        ),
    )


async def build_forest_loss_report(
    client: EarthEngineClient, query: ForestLossQuery
) -> ForestLossResponse:
    """Forest loss is required; forest cover is best effort and becomes null on failure."""
    forest_loss = await geo_analysis.get_forest_loss_data(
        client, query.country, query.start_year, query.end_year
    )

    forest_cover = None
    if query.include_cover:
        try:
            forest_cover = await geo_analysis.get_forest_cover_data(client, query.country)
        except Exception as e:
            logger.warning(f"Failed to get forest cover data for {query.country}: {e}")

    return assemble_forest_loss_response(query, forest_loss, forest_cover)
