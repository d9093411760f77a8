"""Shared domain models for the HealthWatch platform."""
from .reports import (
    Role,
    Actor,
    ReportStatus,
    REPORT_TRANSITIONS,
    can_transition,
    StatusChange,
    HealthReport,
    Location,
    Symptom,
)
from .risk import (
    Trend,
    AggregateWindow,
    BayesianParameter,
    HotspotData,
    PredictionData,
)
from .actions import (
    ActionStatus,
    ACTION_TRANSITIONS,
    ActionChange,
    SuggestedAction,
)

__all__ = [
    "Role",
    "Actor",
    "ReportStatus",
    "REPORT_TRANSITIONS",
    "can_transition",
    "StatusChange",
    "HealthReport",
    "Location",
    "Symptom",
    "Trend",
    "AggregateWindow",
    "BayesianParameter",
    "HotspotData",
    "PredictionData",
    "ActionStatus",
    "ACTION_TRANSITIONS",
    "ActionChange",
    "SuggestedAction",
]
