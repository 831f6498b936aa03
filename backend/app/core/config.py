"""Application configuration via environment variables."""

import re
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

_TABLE_ID = re.compile(r"^[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+){1,2}$")


class Settings(BaseSettings):
    """App settings loaded from environment / .env file."""

    # BigQuery warehouse. Credentials are checked on first use, not at startup.
    bigquery_project_id: str | None = None
    bigquery_credentials_json: str | None = None
    bigquery_location: str = "US"
    forest_loss_yearly_table: str = "qst843-ecb.climate_ds.v_forest_loss_yearly"
    forest_loss_forecast_table: str = "qst843-ecb.climate_ds.forest_loss_forecast_15y"
    warehouse_timeout_seconds: float = 30.0

    # Earth Engine
    gee_key_path: Path = Path("keys/gee-service.json")
    gee_timeout_seconds: float = 120.0

    default_country: str = "Brazil"

    # API
    api_title: str = "Climate Data Dashboard API"
    api_version: str = "0.1.0"
    api_prefix: str = "/api"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:5173",
    ]
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("forest_loss_yearly_table", "forest_loss_forecast_table")
    @classmethod
    def _check_table_id(cls, value: str) -> str:
        # Table ids are interpolated into SQL, so only dotted identifiers are allowed.
        if not _TABLE_ID.match(value):
            raise ValueError(f"Invalid BigQuery table id: {value!r}")
        return value


settings = Settings()
