"""Query-string validation. Runs before any backend is called."""

from app.core.errors import ValidationError
from app.schemas.forest import ForestLossQuery

# Hansen GFC v1.11 covers loss years 2001-2023
MIN_YEAR = 2001
MAX_YEAR = 2023


def require_country(country: str | None) -> str:
    """Trimmed country name, or a 400 if it is blank."""
    if country is None or not country.strip():
        raise ValidationError(
            "Country parameter is required",
            "Please provide a country name using ?country=Brazil",
        )
    return country.strip()


def _invalid_year_range() -> ValidationError:
    return ValidationError(
        "Invalid year range",
        f"Years must be between {MIN_YEAR}-{MAX_YEAR} and startYear must be <= endYear",
    )


def _parse_year(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        raise _invalid_year_range() from None


def parse_flag(value: str | None) -> bool:
    return value is not None and value.strip().lower() == "true"


def validate_forest_loss_query(
    country: str | None,
    start_year: str | None = None,
    end_year: str | None = None,
    include_cover: str | None = None,
) -> ForestLossQuery:
    """Check country first, then the year range."""
    name = require_country(country)
    start = _parse_year(start_year, MIN_YEAR)
    end = _parse_year(end_year, MAX_YEAR)
    if start < MIN_YEAR or end > MAX_YEAR or start > end:
        raise _invalid_year_range()
    return ForestLossQuery(
        country=name, start_year=start, end_year=end, include_cover=parse_flag(include_cover)
    )


def country_or_default(country: str | None, default: str) -> str:
    """Absent means the default country; present but blank is an error."""
    if country is None:
        return default
    return require_country(country)
