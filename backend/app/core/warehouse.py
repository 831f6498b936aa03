"""BigQuery warehouse client: one lazily built engine per process."""

import asyncio
import json
import logging
import threading
from typing import Any

from fastapi import Request
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings
from app.core.errors import BackendError, ConfigurationError
from app.schemas.forest import ConnectionCheck

logger = logging.getLogger(__name__)


class WarehouseClient:
    """Memoized SQLAlchemy engine on the BigQuery dialect.

    Nothing touches the network until the first query. The engine is built
    once under a lock, and a failed build leaves the client empty so the next
    call tries again.
    """

    def __init__(
        self,
        project_id: str | None,
        credentials_json: str | None,
        location: str = "US",
        timeout: float = 30.0,
    ) -> None:
        self.project_id = project_id
        self.credentials_json = credentials_json
        self.location = location
        self.timeout = timeout
        self._engine: Engine | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "WarehouseClient":
        return cls(
            project_id=settings.bigquery_project_id,
            credentials_json=settings.bigquery_credentials_json,
            location=settings.bigquery_location,
            timeout=settings.warehouse_timeout_seconds,
        )

    def get_engine(self) -> Engine:
        if self._engine is not None:
            return self._engine
        with self._lock:
            if self._engine is None:
                self._engine = self._build_engine()
        return self._engine

    def _build_engine(self) -> Engine:
        if not self.project_id or not self.credentials_json:
            raise ConfigurationError(
                "Missing BigQuery environment variables. Please set BIGQUERY_PROJECT_ID "
                "and BIGQUERY_CREDENTIALS_JSON in your .env file."
            )
        try:
            credentials = json.loads(self.credentials_json)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Failed to parse BigQuery credentials: {e}") from e

        logger.info(f"Creating BigQuery engine for project {self.project_id}")
        try:
            # The dialect builds service-account credentials from the blob here.
            return create_engine(
                f"bigquery://{self.project_id}",
                credentials_info=credentials,
                location=self.location,
            )
        except (ValueError, TypeError, GoogleAuthError) as e:
            raise ConfigurationError(f"Invalid BigQuery credentials: {e}") from e

    async def query(
        self, sql: str, params: dict[str, Any] | None = None, timeout: float | None = None
    ) -> list[dict[str, Any]]:
        """Run a parameterized query in a worker thread and return rows as dicts."""
        engine = self.get_engine()
        limit = timeout if timeout is not None else self.timeout

        def _execute() -> list[dict[str, Any]]:
            with engine.connect() as conn:
                result = conn.execute(text(sql), params or {})
                return [dict(r._mapping) for r in result.all()]

        try:
            return await asyncio.wait_for(asyncio.to_thread(_execute), timeout=limit)
        except TimeoutError as e:
            raise BackendError(f"BigQuery query timed out after {limit:g}s") from e
        except (SQLAlchemyError, GoogleAPIError, GoogleAuthError) as e:
            raise BackendError(str(e)) from e

    async def check_connection(self) -> ConnectionCheck:
        """Run a trivial query. Failures are reported, never raised."""
        try:
            rows = await self.query("SELECT 1 AS test")
        except Exception as e:
            logger.warning(f"BigQuery connection test failed: {e}")
            return ConnectionCheck(success=False, error=str(e))
        return ConnectionCheck(success=True, data=rows)


def get_warehouse(request: Request) -> WarehouseClient:
    """FastAPI dependency returning the process-wide warehouse client."""
    return request.app.state.warehouse
