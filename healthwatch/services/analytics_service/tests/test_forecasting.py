"""Tests for the forecasting boundary."""
import threading
import pytest
from datetime import datetime
from unittest.mock import MagicMock

from healthwatch.shared.errors import DependencyUnavailableError
from healthwatch.shared.models import PredictionData
from healthwatch.shared.utils import configure_pii_salt
from healthwatch.services.analytics_service import HttpForecastClient, PredictionService


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


TOMORROW = datetime(2026, 10, 20)


def prediction(location_id: str) -> PredictionData:
    return PredictionData(location_id=location_id, timestamp=TOMORROW, expected_count=4.2)


class TestPredictionService:

    def test_no_forecaster_means_no_predictions(self):
        service = PredictionService()

        assert service.available is False
        assert service.predictions_for(["Gym"]) == []

    def test_collects_per_location(self):
        forecaster = MagicMock()
        forecaster.forecast.side_effect = lambda location_id, horizon: [prediction(location_id)]
        service = PredictionService(forecaster=forecaster, horizon=5)

        result = service.predictions_for(["Gym", "Library"])

        assert [p.location_id for p in result] == ["Gym", "Library"]
        forecaster.forecast.assert_any_call("Gym", 5)

    def test_empty_location_list_skips_forecaster(self):
        forecaster = MagicMock()
        service = PredictionService(forecaster=forecaster)

        assert service.predictions_for([]) == []
        forecaster.forecast.assert_not_called()

    def test_dependency_error_yields_empty_list(self):
        forecaster = MagicMock()
        forecaster.forecast.side_effect = DependencyUnavailableError("down", dependency="forecasting")
        service = PredictionService(forecaster=forecaster)

        assert service.predictions_for(["Gym"]) == []

    def test_unexpected_error_yields_empty_list(self):
        forecaster = MagicMock()
        forecaster.forecast.side_effect = KeyError("boom")
        service = PredictionService(forecaster=forecaster)

        assert service.predictions_for(["Gym"]) == []

    def test_timeout_yields_empty_list(self):
        release = threading.Event()
        forecaster = MagicMock()
        forecaster.forecast.side_effect = lambda location_id, horizon: release.wait(5) and []
        service = PredictionService(forecaster=forecaster, timeout_seconds=0.05)

        try:
            assert service.predictions_for(["Gym"]) == []
        finally:
            release.set()
            service.shutdown()


class TestHttpForecastClient:

    def test_requires_endpoint(self):
        with pytest.raises(ValueError):
            HttpForecastClient("")

    def test_api_key_sets_bearer_header(self):
        client = HttpForecastClient("http://forecast/predict", api_key="k-123")
        assert client.headers["Authorization"] == "Bearer k-123"

    def test_parse_response(self):
        result = HttpForecastClient._parse("Gym", {
            "predictions": [
                {"timestamp": "2026-10-20T00:00:00Z", "expectedCount": 4.2},
                {"timestamp": "2026-10-21T00:00:00", "expectedCount": "3"},
            ]
        })

        assert result[0] == PredictionData("Gym", TOMORROW, 4.2)
        assert result[1].expected_count == 3.0

    @pytest.mark.parametrize("payload", [
        {},
        {"predictions": [{"timestamp": "not-a-date", "expectedCount": 1}]},
        {"predictions": [{"timestamp": "2026-10-20T00:00:00"}]},
        None,
    ])
    def test_malformed_response(self, payload):
        with pytest.raises(DependencyUnavailableError):
            HttpForecastClient._parse("Gym", payload)

    def test_unreachable_service(self):
        client = HttpForecastClient("http://127.0.0.1:9/predict", timeout_seconds=0.5)

        with pytest.raises(DependencyUnavailableError) as exc:
            client.forecast("Gym", 3)
        assert exc.value.dependency == "forecasting"
