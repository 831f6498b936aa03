"""Tests for Earth Engine forest statistics — ee module and client mocked."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.errors import BackendError, NotFoundError, UnsupportedReducerError
from app.schemas.forest import ForestCoverReport, ForestLossReport
from app.services import geo_analysis
from conftest import set_country_matches


def _loss_area(ee_module: MagicMock) -> MagicMock:
    """The masked km² area image built by the forest loss query."""
    return (
        ee_module.Image.pixelArea.return_value.divide.return_value.rename.return_value
        .updateMask.return_value
    )


async def test_resolve_country_boundary(mock_gee: AsyncMock, mock_ee: MagicMock) -> None:
    set_country_matches(mock_ee, 1)

    boundary = await geo_analysis.resolve_country_boundary(mock_gee, "Brazil")

    mock_ee.FeatureCollection.assert_called_once_with("USDOS/LSIB_SIMPLE/2017")
    mock_ee.Filter.eq.assert_called_once_with("COUNTRY_NA", "Brazil")
    assert boundary is mock_ee.FeatureCollection.return_value.filter.return_value


async def test_resolve_unknown_country(mock_gee: AsyncMock, mock_ee: MagicMock) -> None:
    set_country_matches(mock_ee, 0)

    with pytest.raises(NotFoundError, match='Country "Atlantis" not found'):
        await geo_analysis.resolve_country_boundary(mock_gee, "Atlantis")


@pytest.mark.parametrize(
    ("name", "method"),
    [
        ("sum", "sum"),
        ("MEAN", "mean"),
        ("median", "median"),
        ("min", "min"),
        ("max", "max"),
        (" stddev ", "stdDev"),
    ],
)
def test_get_reducer(mock_ee: MagicMock, name: str, method: str) -> None:
    reducer = geo_analysis.get_reducer(name)

    assert reducer is getattr(mock_ee.Reducer, method).return_value


def test_unknown_reducer_fails_closed() -> None:
    """Unrecognized reducer names are rejected instead of silently meaning sum."""
    with pytest.raises(UnsupportedReducerError, match="percentile"):
        geo_analysis.normalize_reducer("percentile")


async def test_reduce_region(mock_gee: AsyncMock, mock_ee: MagicMock) -> None:
    image = mock_ee.Image.return_value.select.return_value.addBands.return_value
    image.reduceRegion.return_value.getInfo.return_value = {"b1": 4.2, "area": 10.0}
    region = MagicMock()

    data = await geo_analysis.reduce_region(
        mock_gee, "some/dataset", ["b1"], "mean", region, scale=500, max_pixels=1e9
    )

    assert data == {"b1": 4.2, "area": 10.0}
    mock_ee.Image.assert_called_once_with("some/dataset")
    mock_ee.Image.return_value.select.assert_called_once_with(["b1"])
    kwargs = image.reduceRegion.call_args.kwargs
    assert kwargs["reducer"] is mock_ee.Reducer.mean.return_value
    assert kwargs["geometry"] is region
    assert kwargs["scale"] == 500
    assert kwargs["maxPixels"] == 1e9


async def test_reduce_region_unknown_reducer_skips_backend(mock_gee: AsyncMock) -> None:
    with pytest.raises(UnsupportedReducerError):
        await geo_analysis.reduce_region(mock_gee, "d", ["b"], "mode", MagicMock(), 30)

    mock_gee.run.assert_not_awaited()


async def test_get_forest_loss_data(mock_gee: AsyncMock, mock_ee: MagicMock) -> None:
    """Group buckets are offsets from start_year and come back sorted by year."""
    set_country_matches(mock_ee, 1)
    area = _loss_area(mock_ee)
    area.reduceRegion.return_value.getInfo.return_value = {"area": 1234.5}
    area.addBands.return_value.reduceRegion.return_value.getInfo.return_value = {
        "groups": [
            {"bucket": 2, "sum": 300.0},
            {"bucket": 0, "sum": 500.5},
            {"bucket": 1, "sum": None},
        ]
    }

    report = await geo_analysis.get_forest_loss_data(mock_gee, "Brazil", 2010, 2012)

    assert isinstance(report, ForestLossReport)
    assert report.total_loss_km2 == 1234.5
    assert [(y.year, y.loss_km2) for y in report.yearly_data] == [
        (2010, 500.5),
        (2011, 0.0),
        (2012, 300.0),
    ]
    assert (report.start_year, report.end_year) == (2010, 2012)

    loss_year = mock_ee.Image.return_value.select.return_value
    mock_ee.Image.return_value.select.assert_called_with("lossyear")
    loss_year.gte.assert_called_once_with(10)
    loss_year.lte.assert_called_once_with(12)
    loss_year.subtract.assert_called_once_with(10)
    mock_ee.Reducer.sum.return_value.group.assert_called_once_with(
        groupField=1, groupName="bucket"
    )
    assert area.reduceRegion.call_args.kwargs["scale"] == 30
    assert area.reduceRegion.call_args.kwargs["maxPixels"] == 1e13


async def test_get_forest_loss_data_no_loss(mock_gee: AsyncMock, mock_ee: MagicMock) -> None:
    set_country_matches(mock_ee, 1)
    area = _loss_area(mock_ee)
    area.reduceRegion.return_value.getInfo.return_value = {"area": None}
    area.addBands.return_value.reduceRegion.return_value.getInfo.return_value = {}

    report = await geo_analysis.get_forest_loss_data(mock_gee, "Vatican City")

    assert report.total_loss_km2 == 0.0
    assert report.yearly_data == []
    assert (report.start_year, report.end_year) == (2001, 2023)


async def test_get_forest_loss_data_unknown_country(
    mock_gee: AsyncMock, mock_ee: MagicMock
) -> None:
    set_country_matches(mock_ee, 0)

    with pytest.raises(NotFoundError):
        await geo_analysis.get_forest_loss_data(mock_gee, "Atlantis", 2001, 2023)


async def test_get_forest_cover_data(mock_gee: AsyncMock, mock_ee: MagicMock) -> None:
    set_country_matches(mock_ee, 1)
    canopy = (
        mock_ee.Image.pixelArea.return_value.divide.return_value.multiply.return_value
        .rename.return_value
    )
    canopy.reduceRegion.return_value.getInfo.return_value = {"canopy": 4_900_000.0}

    report = await geo_analysis.get_forest_cover_data(mock_gee, "Brazil")

    assert isinstance(report, ForestCoverReport)
    assert report.forest_cover_2000_km2 == 4_900_000.0
    mock_ee.Image.return_value.select.assert_called_once_with("treecover2000")
    mock_ee.Image.return_value.select.return_value.divide.assert_called_once_with(100)


async def test_query_dataset(mock_gee: AsyncMock, mock_ee: MagicMock) -> None:
    set_country_matches(mock_ee, 1)
    image = mock_ee.Image.return_value.select.return_value.addBands.return_value
    image.reduceRegion.return_value.getInfo.return_value = {"elevation": 320.0}

    stats = await geo_analysis.query_dataset(
        mock_gee, "USGS/SRTMGL1_003", "Peru", ["elevation"], reducer="Median", scale=5000
    )

    assert stats.data == {"elevation": 320.0}
    assert stats.reducer == "median"
    assert stats.scale == 5000
    assert stats.bands == ["elevation"]


async def test_check_connection_success(mock_gee: AsyncMock, mock_ee: MagicMock) -> None:
    result = await geo_analysis.check_connection(mock_gee)

    assert result.success is True
    assert result.error is None
    mock_ee.Image.assert_called_once_with(geo_analysis.CONNECTION_TEST_IMAGE)


async def test_check_connection_never_raises(mock_gee: AsyncMock) -> None:
    mock_gee.run.side_effect = BackendError("Earth Engine request timed out after 120s")

    result = await geo_analysis.check_connection(mock_gee)

    assert result.success is False
    assert "timed out" in (result.error or "")
