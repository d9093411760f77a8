"""Boundary to the external case-count forecasting service.

The forecasting model (training and inference) lives elsewhere. This
module only defines the narrow ``forecast(location, horizon)`` interface,
an aiohttp client for the HTTP deployment of it, and the guard that keeps
a slow or failing forecaster from blocking the dashboard.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Iterable, List, Optional

from healthwatch.shared.errors import DependencyUnavailableError
from healthwatch.shared.models import PredictionData

logger = logging.getLogger(__name__)


class Forecaster(ABC):
    """Short-horizon case-count forecaster."""

    @abstractmethod
    def forecast(self, location_id: str, horizon: int) -> List[PredictionData]:
        """Expected report counts for the next ``horizon`` windows.

        Raises:
            DependencyUnavailableError: If the forecaster cannot answer
        """


class HttpForecastClient(Forecaster):
    """Calls the forecasting service over HTTP.

    Request:
        POST {endpoint}  {"location": "Room-12A", "horizon": 3}

    Response:
        {"predictions": [{"timestamp": "2026-10-20T00:00:00", "expectedCount": 4.2}]}
    """

    def __init__(self, endpoint: str, timeout_seconds: float = 2.0, api_key: Optional[str] = None):
        if not endpoint:
            raise ValueError("Forecast endpoint required")

        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"

        logger.info(
            "FORECAST_CLIENT_INITIALIZED",
            extra={"endpoint": endpoint, "timeout_seconds": timeout_seconds}
        )

    def forecast(self, location_id: str, horizon: int) -> List[PredictionData]:
        return asyncio.run(self.forecast_async(location_id, horizon))

    async def forecast_async(self, location_id: str, horizon: int) -> List[PredictionData]:
        import aiohttp

        payload = {"location": location_id, "horizon": horizon}
        start_time = time.time()

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.endpoint,
                    headers=self.headers,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    response.raise_for_status()
                    result = await response.json()
        except Exception as e:
            logger.warning(
                "FORECAST_REQUEST_FAILED",
                extra={"location_id": location_id, "error": str(e) or type(e).__name__}
            )
            raise DependencyUnavailableError(
                f"Forecasting service unavailable: {e}", dependency="forecasting"
            ) from e

        latency_ms = (time.time() - start_time) * 1000
        predictions = self._parse(location_id, result)

        logger.info(
            "FORECAST_RECEIVED",
            extra={
                "location_id": location_id,
                "points": len(predictions),
                "latency_ms": round(latency_ms, 1),
            }
        )
        return predictions

    @staticmethod
    def _parse(location_id: str, result) -> List[PredictionData]:
        try:
            return [
                PredictionData(
                    location_id=location_id,
                    timestamp=datetime.fromisoformat(item["timestamp"].rstrip("Z")),
                    expected_count=float(item["expectedCount"]),
                )
                for item in result["predictions"]
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DependencyUnavailableError(
                f"Malformed forecast response: {e}", dependency="forecasting"
            ) from e


class PredictionService:
    """Fetches predictions under a hard deadline.

    Any failure, including the deadline passing, yields an empty list so
    the rest of the dashboard is still served.
    """

    def __init__(
        self,
        forecaster: Optional[Forecaster] = None,
        timeout_seconds: float = 2.0,
        horizon: int = 3,
        max_workers: int = 2,
    ):
        self.forecaster = forecaster
        self.timeout_seconds = timeout_seconds
        self.horizon = horizon
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="forecast")

    @property
    def available(self) -> bool:
        return self.forecaster is not None

    def predictions_for(self, location_ids: Iterable[str]) -> List[PredictionData]:
        location_ids = list(location_ids)
        if self.forecaster is None or not location_ids:
            return []

        future = self._executor.submit(self._collect, location_ids)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "PREDICTIONS_UNAVAILABLE",
                extra={"reason": "timeout", "timeout_seconds": self.timeout_seconds}
            )
        except DependencyUnavailableError as e:
            logger.warning(
                "PREDICTIONS_UNAVAILABLE",
                extra={"reason": "dependency_error", "error": e.message}
            )
        except Exception:
            logger.exception("PREDICTIONS_UNAVAILABLE", extra={"reason": "unexpected_error"})
        return []

    def _collect(self, location_ids: List[str]) -> List[PredictionData]:
        predictions: List[PredictionData] = []
        for location_id in location_ids:
            predictions.extend(self.forecaster.forecast(location_id, self.horizon))
        return predictions

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
