"""Tests for query-string validation."""

import pytest

from app.api.validation import (
    country_or_default,
    parse_flag,
    require_country,
    validate_forest_loss_query,
)
from app.core.errors import ValidationError


@pytest.mark.parametrize("country", [None, "", "   ", "\t\n"])
def test_blank_country_rejected(country: str | None) -> None:
    with pytest.raises(ValidationError) as exc_info:
        require_country(country)

    assert exc_info.value.error == "Country parameter is required"


def test_country_is_trimmed() -> None:
    assert require_country("  Brazil ") == "Brazil"


def test_defaults() -> None:
    query = validate_forest_loss_query("Brazil")

    assert query.country == "Brazil"
    assert (query.start_year, query.end_year) == (2001, 2023)
    assert query.include_cover is False


@pytest.mark.parametrize(
    ("start", "end"),
    [
        ("2000", "2010"),
        ("2005", "2024"),
        ("2015", "2010"),
        ("1990", "2030"),
        ("abc", "2010"),
        ("2005", "20.5"),
    ],
)
def test_invalid_year_range(start: str, end: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_forest_loss_query("Brazil", start, end)

    assert exc_info.value.error == "Invalid year range"


@pytest.mark.parametrize(("start", "end"), [("2001", "2023"), ("2010", "2010"), (" 2005 ", "")])
def test_valid_year_range(start: str, end: str) -> None:
    query = validate_forest_loss_query("Brazil", start, end)

    assert 2001 <= query.start_year <= query.end_year <= 2023


def test_country_checked_before_years() -> None:
    """A blank country is reported even when the years are also invalid."""
    with pytest.raises(ValidationError) as exc_info:
        validate_forest_loss_query(" ", "1900", "1800")

    assert exc_info.value.error == "Country parameter is required"


def test_query_is_immutable() -> None:
    query = validate_forest_loss_query("Brazil", "2010", "2012", "true")

    with pytest.raises(Exception):  # noqa: B017 - pydantic frozen instance error
        query.country = "Peru"  # type: ignore[misc]


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, False), ("true", True), ("TRUE", True), ("false", False), ("1", False)],
)
def test_parse_flag(value: str | None, expected: bool) -> None:
    assert parse_flag(value) is expected


def test_country_or_default() -> None:
    assert country_or_default(None, "Brazil") == "Brazil"
    assert country_or_default(" Peru ", "Brazil") == "Peru"
    with pytest.raises(ValidationError):
        country_or_default("  ", "Brazil")
