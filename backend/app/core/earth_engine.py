"""Google Earth Engine session management.

Earth Engine keeps its session in module-global state inside the ``ee``
package, so this client only tracks whether that session has been set up and
makes sure it is set up once. The Python SDK is blocking; every call is pushed
to a worker thread and bounded by a timeout.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import ee
from ee import EEException
from fastapi import Request

from app.core.config import Settings
from app.core.errors import BackendError, ConfigurationError, InitializationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EarthEngineClient:
    """Lazily initialized Earth Engine session.

    States: uninitialized -> initializing -> ready. While initializing, every
    caller awaits the same task. A failed attempt clears the task so the next
    call starts over.
    """

    def __init__(self, key_path: Path, timeout: float = 120.0) -> None:
        self.key_path = Path(key_path)
        self.timeout = timeout
        self._initialized = False
        self._init_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "EarthEngineClient":
        return cls(key_path=settings.gee_key_path, timeout=settings.gee_timeout_seconds)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        # shield: a cancelled or timed-out caller must not cancel the shared attempt
        try:
            await asyncio.wait_for(asyncio.shield(self._init_task), timeout=self.timeout)
        except TimeoutError as e:
            raise InitializationError(
                f"Failed to initialize Earth Engine: timed out after {self.timeout:g}s"
            ) from e

    async def _initialize(self) -> None:
        try:
            await asyncio.to_thread(self._authenticate)
        except Exception:
            self._init_task = None
            raise
        self._initialized = True
        self._init_task = None
        logger.info("Earth Engine initialized with service account")

    def _authenticate(self) -> None:
        if not self.key_path.exists():
            raise ConfigurationError(
                f"Service account key file not found at: {self.key_path.resolve()}"
            )
        try:
            key = json.loads(self.key_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Unable to read service account key file {self.key_path}: {e}"
            ) from e
        if "client_email" not in key:
            raise ConfigurationError(
                f"Service account key file {self.key_path} has no client_email"
            )

        try:
            credentials = ee.ServiceAccountCredentials(
                key["client_email"], key_data=json.dumps(key)
            )
            ee.Initialize(credentials, project=key.get("project_id"))
        except Exception as e:
            logger.error(f"Failed to initialize Earth Engine: {e}")
            raise InitializationError(f"Failed to initialize Earth Engine: {e}") from e

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Initialize if needed, then run a blocking Earth Engine function."""
        await self.initialize()
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except TimeoutError as e:
            raise BackendError(f"Earth Engine request timed out after {self.timeout:g}s") from e
        except EEException as e:
            raise BackendError(str(e)) from e


def get_earth_engine(request: Request) -> EarthEngineClient:
    """FastAPI dependency returning the process-wide Earth Engine client."""
    return request.app.state.earth_engine
