"""Tests for shared domain models."""
import pytest
from datetime import datetime, timedelta

from healthwatch.shared.models import (
    ACTION_TRANSITIONS,
    ActionStatus,
    Actor,
    BayesianParameter,
    HealthReport,
    HotspotData,
    ReportStatus,
    Role,
    StatusChange,
    SuggestedAction,
    Trend,
    can_transition,
)
from healthwatch.shared.utils import configure_pii_salt


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


T0 = datetime(2026, 10, 19, 9, 0, 0)


def make_report(**overrides) -> HealthReport:
    fields = dict(
        id="rpt_1",
        reporter_id="student-1",
        symptoms=("fever", "cough"),
        location_id="Room-12A",
        status=ReportStatus.PENDING,
        created_at=T0,
        status_history=(StatusChange(ReportStatus.PENDING, "student-1", T0),),
    )
    fields.update(overrides)
    return HealthReport(**fields)


class TestActor:

    def test_admin_flag(self):
        assert Actor("a1", Role.ADMIN).is_admin
        assert not Actor("s1", Role.STUDENT).is_admin

    def test_system_actor_is_not_admin(self):
        system = Actor.system()
        assert system.role == Role.SYSTEM
        assert not system.is_admin


class TestReportTransitions:

    @pytest.mark.parametrize("current,requested", [
        (ReportStatus.PENDING, ReportStatus.INVESTIGATING),
        (ReportStatus.PENDING, ReportStatus.RESOLVED),
        (ReportStatus.INVESTIGATING, ReportStatus.REVIEWED),
        (ReportStatus.REVIEWED, ReportStatus.RESOLVED),
    ])
    def test_allowed_edges(self, current, requested):
        assert can_transition(current, requested)

    @pytest.mark.parametrize("current,requested", [
        (ReportStatus.PENDING, ReportStatus.REVIEWED),
        (ReportStatus.INVESTIGATING, ReportStatus.PENDING),
        (ReportStatus.INVESTIGATING, ReportStatus.RESOLVED),
        (ReportStatus.REVIEWED, ReportStatus.INVESTIGATING),
        (ReportStatus.PENDING, ReportStatus.PENDING),
    ])
    def test_rejected_edges(self, current, requested):
        assert not can_transition(current, requested)

    def test_resolved_is_terminal(self):
        for status in ReportStatus:
            assert not can_transition(ReportStatus.RESOLVED, status)


class TestHealthReport:

    def test_requires_symptoms(self):
        with pytest.raises(ValueError):
            make_report(symptoms=())

    def test_history_must_end_in_status(self):
        with pytest.raises(ValueError):
            make_report(status=ReportStatus.INVESTIGATING)

    def test_with_status_appends_history_and_bumps_version(self):
        report = make_report()
        later = T0 + timedelta(minutes=5)

        updated = report.with_status(ReportStatus.INVESTIGATING, "admin-1", later)

        assert updated.status == ReportStatus.INVESTIGATING
        assert updated.version == report.version + 1
        assert len(updated.status_history) == 2
        assert updated.status_history[-1] == StatusChange(ReportStatus.INVESTIGATING, "admin-1", later)
        assert report.status == ReportStatus.PENDING

    def test_with_status_keeps_history_monotonic(self):
        report = make_report()
        earlier = T0 - timedelta(hours=1)

        updated = report.with_status(ReportStatus.RESOLVED, "admin-1", earlier)

        assert updated.status_history[-1].timestamp == T0

    def test_to_dict(self):
        data = make_report(note="felt dizzy").to_dict()

        assert data["id"] == "rpt_1"
        assert data["reporterId"] == "student-1"
        assert data["symptoms"] == ["fever", "cough"]
        assert data["location"] == "Room-12A"
        assert data["status"] == "pending"
        assert data["createdAt"] == "2026-10-19T09:00:00Z"
        assert data["statusHistory"][0]["actor"] == "student-1"

    def test_is_immutable(self):
        report = make_report()
        with pytest.raises(Exception):  # FrozenInstanceError
            report.status = ReportStatus.RESOLVED


class TestBayesianParameter:

    def test_rejects_probability_out_of_range(self):
        with pytest.raises(ValueError):
            BayesianParameter("Gym", prior=1.5, likelihood_ratio=1.0, posterior=0.1,
                              evidence_count=0, last_updated=T0)
        with pytest.raises(ValueError):
            BayesianParameter("Gym", prior=0.1, likelihood_ratio=1.0, posterior=-0.1,
                              evidence_count=0, last_updated=T0)

    def test_to_dict_uses_camel_case(self):
        param = BayesianParameter("Gym", prior=0.01, likelihood_ratio=2.5, posterior=0.0246,
                                  evidence_count=3, last_updated=T0)
        data = param.to_dict()

        assert data["location"] == "Gym"
        assert data["likelihoodRatio"] == 2.5
        assert data["evidenceCount"] == 3
        assert data["lastUpdated"] == "2026-10-19T09:00:00Z"


class TestSuggestedAction:

    def test_linear_transitions(self):
        assert ACTION_TRANSITIONS[ActionStatus.PENDING] == {ActionStatus.IN_PROGRESS}
        assert ACTION_TRANSITIONS[ActionStatus.IN_PROGRESS] == {ActionStatus.COMPLETED}
        assert ACTION_TRANSITIONS[ActionStatus.COMPLETED] == frozenset()

    def test_open_and_auto_generated(self):
        hotspot = HotspotData("Gym", 0.9, 10, Trend.UP, 1)
        action = SuggestedAction(
            id="act_1",
            description="Investigate",
            status=ActionStatus.PENDING,
            created_at=T0,
            created_by="system",
            location_id="Gym",
            hotspot=hotspot,
        )

        assert action.is_open
        assert action.auto_generated
        assert action.to_dict()["hotspot"]["trend"] == "up"

        done = action.with_status(ActionStatus.COMPLETED, "admin-1", T0)
        assert not done.is_open
        assert done.to_dict()["status"] == "completed"
