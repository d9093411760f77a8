"""Dashboard read model.

One refresh cycle runs the whole pipeline against a single aggregation
snapshot: estimate every location, rank hotspots, seed actions for new
hotspots, rebuild the stats. Lifecycle writes only mark the view dirty;
the next read recomputes it. A failed cycle leaves the previous view in
place and is retried on the next read.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from healthwatch.shared.catalog import ReferenceCatalog
from healthwatch.shared.errors import AuthorizationError
from healthwatch.shared.models import (
    Actor,
    BayesianParameter,
    HealthReport,
    HotspotData,
    ReportStatus,
    SuggestedAction,
)
from healthwatch.services.action_service import ActionTracker
from .aggregator import Aggregator, AggregationSnapshot
from .bayesian import BayesianRiskEstimator
from .forecasting import PredictionService
from .hotspot_publisher import HotspotEventPublisher
from .hotspots import HotspotRanker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardStats:
    """Summary figures shown at the top of the admin dashboard."""
    total_reports: int
    by_status: Dict[str, int]
    active_reports: int
    reports_in_window: int
    distinct_reporters_in_window: int
    locations_reporting: int
    active_hotspots: int
    highest_risk: float
    window_start: datetime
    generated_at: datetime

    @classmethod
    def empty(cls, window_start: datetime, generated_at: datetime) -> "DashboardStats":
        return cls(
            total_reports=0,
            by_status={status.value: 0 for status in ReportStatus},
            active_reports=0,
            reports_in_window=0,
            distinct_reporters_in_window=0,
            locations_reporting=0,
            active_hotspots=0,
            highest_risk=0.0,
            window_start=window_start,
            generated_at=generated_at,
        )

    def to_dict(self) -> dict:
        return {
            "totalReports": self.total_reports,
            "pendingReports": self.by_status.get(ReportStatus.PENDING.value, 0),
            "investigatingReports": self.by_status.get(ReportStatus.INVESTIGATING.value, 0),
            "reviewedReports": self.by_status.get(ReportStatus.REVIEWED.value, 0),
            "resolvedReports": self.by_status.get(ReportStatus.RESOLVED.value, 0),
            "activeReports": self.active_reports,
            "reportsInWindow": self.reports_in_window,
            "distinctReportersInWindow": self.distinct_reporters_in_window,
            "locationsReporting": self.locations_reporting,
            "activeHotspots": self.active_hotspots,
            "highestRisk": round(self.highest_risk, 6),
            "windowStart": self.window_start.isoformat() + "Z",
            "generatedAt": self.generated_at.isoformat() + "Z",
        }


@dataclass(frozen=True)
class DashboardView:
    """Result of one refresh cycle."""
    cycle_id: Optional[str]
    window_start: datetime
    stats: DashboardStats
    hotspots: Tuple[HotspotData, ...] = ()
    bayesian: Optional[BayesianParameter] = None
    revision: int = -1
    new_actions: Tuple[SuggestedAction, ...] = field(default_factory=tuple)


class DashboardService:
    """Builds and serves the composite admin dashboard."""

    def __init__(
        self,
        aggregator: Aggregator,
        estimator: BayesianRiskEstimator,
        ranker: HotspotRanker,
        tracker: ActionTracker,
        catalog: ReferenceCatalog,
        predictions: Optional[PredictionService] = None,
        publisher: Optional[HotspotEventPublisher] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.aggregator = aggregator
        self.estimator = estimator
        self.ranker = ranker
        self.tracker = tracker
        self.catalog = catalog
        self.predictions = predictions or PredictionService()
        self.publisher = publisher
        self.clock = clock

        self._refresh_lock = threading.Lock()
        self._view: Optional[DashboardView] = None
        self._dirty = True

        logger.info(
            "DASHBOARD_SERVICE_INITIALIZED",
            extra={"forecasting_enabled": self.predictions.available}
        )

    @property
    def current_view(self) -> Optional[DashboardView]:
        return self._view

    def mark_dirty(self, report: Optional[HealthReport] = None) -> None:
        """Lifecycle write listener."""
        self._dirty = True

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        view = self._view
        if self._dirty or view is None:
            return True
        return view.window_start != self.aggregator.window_start(now)

    def refresh(self, at: Optional[datetime] = None, if_needed: bool = False) -> DashboardView:
        """Run one full recomputation cycle.

        Estimates and trend memory are stored only after action creation,
        the last stage that can fail, has succeeded. A failed cycle leaves
        them as they were and never leaves an unaudited action behind.

        Args:
            at: Evaluation time (defaults to the clock)
            if_needed: Skip the cycle if another reader refreshed the view
                while this one waited for the lock

        Logs:
            - DASHBOARD_REFRESHED: After the new view is installed
            - DASHBOARD_REFRESH_FAILED: If any stage raised
        """
        with self._refresh_lock:
            now = at or self.clock()
            if if_needed and not self.needs_refresh(now):
                return self._view

            # Cleared before the snapshot: a write landing mid-cycle marks
            # the view dirty again.
            self._dirty = False
            try:
                view = self._run_cycle(now)
            except Exception:
                self._dirty = True
                logger.exception("DASHBOARD_REFRESH_FAILED", extra={"at": now.isoformat()})
                raise
            self._view = view

        logger.info(
            "DASHBOARD_REFRESHED",
            extra={
                "cycle_id": view.cycle_id,
                "revision": view.revision,
                "hotspot_count": len(view.hotspots),
                "new_actions": len(view.new_actions),
            }
        )
        return view

    def view_for(self, now: Optional[datetime] = None) -> Tuple[DashboardView, bool]:
        """Return the freshest available view and whether it is stale."""
        now = now or self.clock()
        if not self.needs_refresh(now):
            return self._view, False

        try:
            return self.refresh(now, if_needed=True), False
        except Exception:
            if self._view is not None:
                logger.warning(
                    "DASHBOARD_SERVING_STALE",
                    extra={"cycle_id": self._view.cycle_id, "revision": self._view.revision}
                )
                return self._view, True

        window_start = self.aggregator.window_start(now)
        return DashboardView(
            cycle_id=None,
            window_start=window_start,
            stats=DashboardStats.empty(window_start, now),
        ), True

    def get_dashboard(self, actor: Actor, at: Optional[datetime] = None) -> dict:
        """Composite read: ``{stats, hotspots, predictions, actions, bayesian}``."""
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can view the dashboard")

        now = at or self.clock()
        view, stale = self.view_for(now)
        predictions = self.predictions.predictions_for(h.location_id for h in view.hotspots)

        stats = view.stats.to_dict()
        stats["openActions"] = len(self.tracker.open_actions())
        stats["stale"] = stale

        bayesian = None
        if view.bayesian is not None:
            bayesian = view.bayesian.to_dict()
            bayesian["isStale"] = self.estimator.is_stale(view.bayesian, now)

        return {
            "stats": stats,
            "hotspots": [h.to_dict() for h in view.hotspots],
            "predictions": [p.to_dict() for p in predictions],
            "actions": [a.to_dict() for a in self.tracker.list_actions()],
            "bayesian": bayesian,
        }

    def create_action(
        self,
        description: str,
        actor: Actor,
        location_id: Optional[str] = None,
    ) -> SuggestedAction:
        return self.tracker.create_action(description, actor, location_id=location_id)

    def transition_action(self, action_id: str, actor: Actor, next_status) -> SuggestedAction:
        return self.tracker.transition_action(action_id, actor, next_status)

    def _run_cycle(self, now: datetime) -> DashboardView:
        snapshot = self.aggregator.snapshot(now)
        current = snapshot.window_start(now)

        locations = sorted(set(self.catalog.location_ids()) | snapshot.locations())
        params = [self.estimator.evaluate(loc, source=snapshot, at=now) for loc in locations]
        counts = {loc: snapshot.total(loc, current) for loc in locations}
        stats_base = self._build_stats(snapshot, current)

        hotspots = self.ranker.rank(params, counts, remember=False)

        # Auto-creation is the last stage that can fail; estimates and trend
        # memory are stored only once it has gone through.
        cycle_id = f"cycle_{uuid.uuid4().hex[:12]}"
        new_actions = self.tracker.auto_create_from_hotspots(hotspots, cycle_id=cycle_id)
        self.estimator.commit(params)
        self.ranker.remember(params, hotspots)

        if self.publisher is not None:
            for action in new_actions:
                self.publisher.publish_hotspot(action.hotspot, cycle_id=cycle_id, action_id=action.id)

        stats = DashboardStats(
            total_reports=stats_base["total_reports"],
            by_status=stats_base["by_status"],
            active_reports=stats_base["active_reports"],
            reports_in_window=stats_base["reports_in_window"],
            distinct_reporters_in_window=stats_base["distinct_reporters_in_window"],
            locations_reporting=stats_base["locations_reporting"],
            active_hotspots=len(hotspots),
            highest_risk=max((p.posterior for p in params), default=0.0),
            window_start=current,
            generated_at=now,
        )

        return DashboardView(
            cycle_id=cycle_id,
            window_start=current,
            stats=stats,
            hotspots=tuple(hotspots),
            bayesian=self._headline_parameter(params, hotspots),
            revision=snapshot.revision,
            new_actions=tuple(new_actions),
        )

    @staticmethod
    def _build_stats(snapshot: AggregationSnapshot, current: datetime) -> dict:
        by_status = snapshot.status_counts()
        in_window = snapshot.windows_in(current)
        reporters = {
            r.reporter_id for r in snapshot.reports
            if snapshot.window_start(r.created_at) == current
        }
        return {
            "total_reports": len(snapshot.reports),
            "by_status": by_status,
            "active_reports": len(snapshot.reports) - by_status[ReportStatus.RESOLVED.value],
            "reports_in_window": sum(w.total for w in in_window),
            "distinct_reporters_in_window": len(reporters),
            "locations_reporting": len(in_window),
        }

    @staticmethod
    def _headline_parameter(
        params: List[BayesianParameter],
        hotspots: List[HotspotData],
    ) -> Optional[BayesianParameter]:
        by_location = {p.location_id: p for p in params}
        if hotspots:
            return by_location[hotspots[0].location_id]
        if not params:
            return None
        return min(params, key=lambda p: (-p.posterior, p.location_id))
