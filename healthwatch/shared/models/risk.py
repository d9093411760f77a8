"""Aggregation and outbreak-risk domain models.

Everything here is derived data: windows are a pure function of the
report store, parameters are owned by the Bayesian estimator and hotspots
are regenerated on every ranking cycle.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional


class Trend(Enum):
    """Direction of a location's risk score versus the previous cycle."""
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


@dataclass(frozen=True)
class AggregateWindow:
    """Report counts for one (location, time window) pair."""
    location_id: str
    window_start: datetime
    window_end: datetime
    total: int = 0
    by_symptom: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    distinct_reporters: int = 0

    def to_dict(self) -> dict:
        return {
            "location": self.location_id,
            "windowStart": self.window_start.isoformat() + "Z",
            "windowEnd": self.window_end.isoformat() + "Z",
            "total": self.total,
            "bySymptom": dict(self.by_symptom),
            "byStatus": dict(self.by_status),
            "distinctReporters": self.distinct_reporters,
        }


@dataclass(frozen=True)
class BayesianParameter:
    """Sequential Bayesian outbreak estimate for one location.

    ``prior`` is the posterior of the last finalized window; ``posterior``
    folds in the evidence of ``window_start``.
    """
    location_id: str
    prior: float
    likelihood_ratio: float
    posterior: float
    evidence_count: int
    last_updated: datetime
    window_start: Optional[datetime] = None
    observed_count: int = 0
    expected_count: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.prior <= 1.0:
            raise ValueError(f"Prior must be 0.0-1.0, got {self.prior}")
        if not 0.0 <= self.posterior <= 1.0:
            raise ValueError(f"Posterior must be 0.0-1.0, got {self.posterior}")

    def to_dict(self) -> dict:
        return {
            "location": self.location_id,
            "prior": round(self.prior, 6),
            "likelihoodRatio": round(self.likelihood_ratio, 6),
            "posterior": round(self.posterior, 6),
            "evidenceCount": self.evidence_count,
            "lastUpdated": self.last_updated.isoformat() + "Z",
            "observedCount": self.observed_count,
            "expectedCount": round(self.expected_count, 3),
        }


@dataclass(frozen=True)
class HotspotData:
    """A ranked location whose outbreak probability exceeds the threshold."""
    location_id: str
    risk_score: float
    report_count: int
    trend: Trend
    rank: int

    def to_dict(self) -> dict:
        return {
            "location": self.location_id,
            "riskScore": round(self.risk_score, 6),
            "reportCount": self.report_count,
            "trend": self.trend.value,
            "rank": self.rank,
        }


@dataclass(frozen=True)
class PredictionData:
    """Forecast point returned by the external forecasting service."""
    location_id: str
    timestamp: datetime
    expected_count: float

    def to_dict(self) -> dict:
        return {
            "location": self.location_id,
            "timestamp": self.timestamp.isoformat() + "Z",
            "expectedCount": round(self.expected_count, 3),
        }
