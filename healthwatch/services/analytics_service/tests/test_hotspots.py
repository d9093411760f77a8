"""Tests for hotspot ranking."""
import pytest
from datetime import datetime

from healthwatch.shared.config import EngineConfig
from healthwatch.shared.models import BayesianParameter, Trend
from healthwatch.shared.utils import configure_pii_salt
from healthwatch.services.analytics_service import HotspotRanker


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


NOW = datetime(2026, 10, 19, 12, 0, 0)


def param(location_id: str, posterior: float) -> BayesianParameter:
    return BayesianParameter(
        location_id=location_id,
        prior=0.01,
        likelihood_ratio=1.0,
        posterior=posterior,
        evidence_count=1,
        last_updated=NOW,
    )


@pytest.fixture
def ranker():
    return HotspotRanker(EngineConfig(hotspot_threshold=0.3))


class TestHotspotRanker:

    def test_orders_by_risk_descending(self, ranker):
        hotspots = ranker.rank(
            [param("Gym", 0.5), param("Library", 0.9), param("Lab-1", 0.7)],
            {"Gym": 4, "Library": 9, "Lab-1": 6},
        )

        assert [h.location_id for h in hotspots] == ["Library", "Lab-1", "Gym"]
        assert [h.rank for h in hotspots] == [1, 2, 3]
        assert hotspots[0].report_count == 9

    def test_ties_broken_by_count_then_id(self, ranker):
        hotspots = ranker.rank(
            [param("Room-14", 0.8), param("Gym", 0.8), param("Cafeteria", 0.8)],
            {"Room-14": 5, "Gym": 7, "Cafeteria": 5},
        )

        assert [h.location_id for h in hotspots] == ["Gym", "Cafeteria", "Room-14"]

    def test_threshold_is_exclusive(self, ranker):
        hotspots = ranker.rank(
            [param("Gym", 0.3), param("Library", 0.2999), param("Lab-1", 0.3001)],
            {},
        )

        assert [h.location_id for h in hotspots] == ["Lab-1"]
        assert hotspots[0].report_count == 0

    def test_empty_input(self, ranker):
        assert ranker.rank([], {}) == []

    def test_deterministic(self, ranker):
        params = [param("Gym", 0.6), param("Library", 0.6), param("Lab-1", 0.9)]
        counts = {"Gym": 3, "Library": 3, "Lab-1": 1}

        first = [(h.location_id, h.rank) for h in ranker.rank(params, counts)]
        second = [(h.location_id, h.rank) for h in ranker.rank(list(reversed(params)), counts)]

        assert first == second

    def test_trend_against_previous_cycle(self, ranker):
        first = ranker.rank([param("Gym", 0.6)], {"Gym": 6})
        assert first[0].trend == Trend.UP

        same = ranker.rank([param("Gym", 0.605)], {"Gym": 6})
        assert same[0].trend == Trend.FLAT

        lower = ranker.rank([param("Gym", 0.4)], {"Gym": 4})
        assert lower[0].trend == Trend.DOWN

    def test_trend_remembers_locations_below_threshold(self, ranker):
        ranker.rank([param("Gym", 0.2)], {})

        assert ranker.trend_for("Gym", 0.2) == Trend.FLAT
        assert ranker.previous_hotspots() == set()

    def test_previous_hotspots(self, ranker):
        ranker.rank([param("Gym", 0.9), param("Library", 0.1)], {})
        assert ranker.previous_hotspots() == {"Gym"}

    def test_rank_without_remembering_keeps_trend_memory(self, ranker):
        ranker.rank([param("Gym", 0.6)], {"Gym": 6})

        ranker.rank([param("Gym", 0.9)], {"Gym": 9}, remember=False)

        assert ranker.trend_for("Gym", 0.6) == Trend.FLAT
        assert ranker.previous_hotspots() == {"Gym"}

    def test_remember_sets_next_baseline(self, ranker):
        params = [param("Gym", 0.9)]
        hotspots = ranker.rank(params, {"Gym": 9}, remember=False)

        ranker.remember(params, hotspots)

        assert ranker.trend_for("Gym", 0.9) == Trend.FLAT
        assert ranker.previous_hotspots() == {"Gym"}
