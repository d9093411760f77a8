"""Tests for the dashboard read model and engine wiring.

Drives the full pipeline: lifecycle writes -> aggregation -> Bayesian
update -> ranking -> auto-created actions -> composite dashboard.
"""
import threading

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

from healthwatch.shared.config import EngineConfig
from healthwatch.shared.errors import AuthorizationError, DependencyUnavailableError, NotFoundError
from healthwatch.shared.models import Actor, PredictionData, Role
from healthwatch.shared.utils import configure_pii_salt
from healthwatch.services.audit_service import AuditAction
from healthwatch.services.engine import build_engine
from healthwatch.services.report_service import PostgresReportStore


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


ADMIN = Actor("admin-1", Role.ADMIN)
STUDENT = Actor("student-0", Role.STUDENT)


class Clock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock(datetime(2026, 10, 19, 12, 0, 0))


@pytest.fixture
def publisher():
    return MagicMock()


@pytest.fixture
def forecaster():
    forecaster = MagicMock()
    forecaster.forecast.side_effect = lambda location_id, horizon: [
        PredictionData(location_id, datetime(2026, 10, 20), 6.5)
    ]
    return forecaster


@pytest.fixture
def engine(clock, publisher, forecaster):
    engine = build_engine(EngineConfig(), clock=clock, publisher=publisher, forecaster=forecaster)
    yield engine
    engine.shutdown()


def submit_cluster(engine, location_id="Room-12A", count=10):
    return [
        engine.lifecycle.submit_report(
            Actor(f"student-{i}", Role.STUDENT), ["fever", "cough"], location_id
        )
        for i in range(count)
    ]


class TestDashboard:

    def test_empty_dashboard(self, engine):
        dashboard = engine.dashboard.get_dashboard(ADMIN)

        assert dashboard["stats"]["totalReports"] == 0
        assert dashboard["stats"]["stale"] is False
        assert dashboard["hotspots"] == []
        assert dashboard["predictions"] == []
        assert dashboard["actions"] == []
        assert dashboard["bayesian"]["posterior"] < 0.01

    def test_cluster_becomes_ranked_hotspot(self, engine):
        submit_cluster(engine)

        dashboard = engine.dashboard.get_dashboard(ADMIN)

        assert [h["location"] for h in dashboard["hotspots"]] == ["Room-12A"]
        hotspot = dashboard["hotspots"][0]
        assert hotspot["rank"] == 1
        assert hotspot["reportCount"] == 10
        assert hotspot["riskScore"] > 0.3
        assert hotspot["trend"] == "up"
        assert dashboard["bayesian"]["location"] == "Room-12A"

        stats = dashboard["stats"]
        assert stats["totalReports"] == 10
        assert stats["pendingReports"] == 10
        assert stats["reportsInWindow"] == 10
        assert stats["distinctReportersInWindow"] == 10
        assert stats["locationsReporting"] == 1
        assert stats["activeHotspots"] == 1
        assert stats["openActions"] == 1

    def test_new_hotspot_seeds_one_action(self, engine, publisher):
        submit_cluster(engine)
        first = engine.dashboard.get_dashboard(ADMIN)

        engine.lifecycle.submit_report(STUDENT, ["fever"], "Room-12A")
        second = engine.dashboard.get_dashboard(ADMIN)

        assert len(first["actions"]) == 1
        assert len(second["actions"]) == 1
        action = second["actions"][0]
        assert action["autoGenerated"] is True
        assert action["location"] == "Room-12A"
        assert action["status"] == "pending"

        publisher.publish_hotspot.assert_called_once()
        assert publisher.publish_hotspot.call_args.kwargs["action_id"] == action["id"]

    def test_predictions_for_hotspots(self, engine, forecaster):
        submit_cluster(engine)

        dashboard = engine.dashboard.get_dashboard(ADMIN)

        assert dashboard["predictions"] == [
            {"location": "Room-12A", "timestamp": "2026-10-20T00:00:00Z", "expectedCount": 6.5}
        ]

    def test_forecaster_failure_leaves_rest_of_dashboard(self, engine, forecaster):
        forecaster.forecast.side_effect = DependencyUnavailableError("down", dependency="forecasting")
        submit_cluster(engine)

        dashboard = engine.dashboard.get_dashboard(ADMIN)

        assert dashboard["predictions"] == []
        assert len(dashboard["hotspots"]) == 1

    def test_students_cannot_view(self, engine):
        with pytest.raises(AuthorizationError):
            engine.dashboard.get_dashboard(STUDENT)

    def test_reads_without_writes_reuse_view(self, engine):
        submit_cluster(engine)
        engine.dashboard.get_dashboard(ADMIN)
        view = engine.dashboard.current_view

        engine.dashboard.get_dashboard(ADMIN)

        assert engine.dashboard.current_view is view

    def test_write_marks_view_dirty(self, engine):
        engine.dashboard.get_dashboard(ADMIN)
        assert not engine.dashboard.needs_refresh()

        engine.lifecycle.submit_report(STUDENT, ["fever"], "Gym")

        assert engine.dashboard.needs_refresh()
        assert engine.dashboard.get_dashboard(ADMIN)["stats"]["totalReports"] == 1

    def test_window_rollover_triggers_refresh(self, engine, clock):
        engine.dashboard.get_dashboard(ADMIN)
        clock.advance(days=1)

        assert engine.dashboard.needs_refresh()

    def test_failed_refresh_serves_last_good_view(self, engine):
        submit_cluster(engine)
        good = engine.dashboard.get_dashboard(ADMIN)
        estimate = engine.estimator.get("Room-12A")

        engine.lifecycle.submit_report(STUDENT, ["fever"], "Room-12A")
        with patch.object(engine.ranker, "rank", side_effect=RuntimeError("ranking bug")):
            stale = engine.dashboard.get_dashboard(ADMIN)

        assert stale["stats"]["stale"] is True
        assert stale["stats"]["totalReports"] == good["stats"]["totalReports"]
        assert stale["hotspots"] == good["hotspots"]
        assert engine.estimator.get("Room-12A") is estimate

        recovered = engine.dashboard.get_dashboard(ADMIN)
        assert recovered["stats"]["stale"] is False
        assert recovered["stats"]["totalReports"] == 11

    def test_failure_before_any_view_serves_empty_view(self, engine):
        with patch.object(engine.ranker, "rank", side_effect=RuntimeError("ranking bug")):
            dashboard = engine.dashboard.get_dashboard(ADMIN)

        assert dashboard["stats"]["stale"] is True
        assert dashboard["stats"]["totalReports"] == 0
        assert dashboard["hotspots"] == []
        assert dashboard["bayesian"] is None

    def test_cluster_after_quiet_days_is_ranked(self, engine, clock):
        engine.dashboard.get_dashboard(ADMIN)
        clock.advance(days=1)
        engine.dashboard.get_dashboard(ADMIN)
        clock.advance(days=1)
        engine.set_baseline("Room-12A", 2.0, ADMIN)

        submit_cluster(engine)
        dashboard = engine.dashboard.get_dashboard(ADMIN)

        assert [h["location"] for h in dashboard["hotspots"]] == ["Room-12A"]
        assert dashboard["bayesian"]["location"] == "Room-12A"
        assert dashboard["bayesian"]["posterior"] > 0.3

    def test_failed_action_creation_leaves_no_partial_state(self, engine):
        submit_cluster(engine)
        real_log = engine.tracker.audit_logger.log

        def failing_log(*args, **kwargs):
            if kwargs.get("action") == AuditAction.ACTION_CREATED:
                raise RuntimeError("audit store down")
            return real_log(*args, **kwargs)

        with patch.object(engine.tracker.audit_logger, "log", side_effect=failing_log):
            dashboard = engine.dashboard.get_dashboard(ADMIN)

        assert dashboard["stats"]["stale"] is True
        assert engine.tracker.list_actions() == []
        assert engine.estimator.get("Room-12A") is None
        assert engine.ranker.previous_hotspots() == set()

        recovered = engine.dashboard.get_dashboard(ADMIN)
        assert recovered["stats"]["stale"] is False
        assert recovered["hotspots"][0]["trend"] == "up"
        assert len(recovered["actions"]) == 1

    def test_refresh_skipped_when_another_reader_refreshed_first(self, engine):
        submit_cluster(engine)
        first = engine.dashboard.refresh()

        again = engine.dashboard.refresh(if_needed=True)

        assert again is first
        assert engine.dashboard.get_dashboard(ADMIN)["hotspots"][0]["trend"] == "up"

    def test_concurrent_dirty_reads_run_one_cycle(self, engine):
        submit_cluster(engine)
        views = []
        start = threading.Barrier(4)

        def read():
            start.wait()
            views.append(engine.dashboard.view_for()[0])

        threads = [threading.Thread(target=read) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({view.cycle_id for view in views}) == 1

    def test_headline_estimate_reports_staleness(self, engine, clock):
        submit_cluster(engine)
        fresh = engine.dashboard.get_dashboard(ADMIN)
        assert fresh["bayesian"]["isStale"] is False

        clock.advance(days=4)
        with patch.object(engine.ranker, "rank", side_effect=RuntimeError("ranking bug")):
            stale = engine.dashboard.get_dashboard(ADMIN)

        assert stale["stats"]["stale"] is True
        assert stale["bayesian"]["isStale"] is True

    def test_action_transitions_visible_immediately(self, engine):
        submit_cluster(engine)
        action_id = engine.dashboard.get_dashboard(ADMIN)["actions"][0]["id"]

        engine.dashboard.transition_action(action_id, ADMIN, "in-progress")

        assert engine.dashboard.get_dashboard(ADMIN)["actions"][0]["status"] == "in-progress"


class TestEngine:

    def test_override_risk_marks_dashboard_dirty(self, engine):
        engine.dashboard.get_dashboard(ADMIN)

        param = engine.override_risk("Gym", 0.5, ADMIN)

        assert param.posterior == 0.5
        assert engine.dashboard.needs_refresh()

    def test_override_unknown_location(self, engine):
        with pytest.raises(NotFoundError):
            engine.override_risk("Mars-Base", 0.5, ADMIN)

    def test_memory_readiness(self, engine):
        assert engine.readiness()["status"] == "ready"

    def test_postgres_backend(self, clock):
        manager = MagicMock()
        manager.health_check.return_value = {"status": "error", "healthy": False}

        engine = build_engine(
            EngineConfig(store_backend="postgres"),
            connection_manager=manager,
            publisher=MagicMock(),
            clock=clock,
        )

        assert isinstance(engine.store, PostgresReportStore)
        manager.transaction.assert_called()
        assert engine.readiness()["status"] == "not_ready"

        engine.shutdown()
        manager.close.assert_called_once()
