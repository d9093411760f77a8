"""Engine wiring.

Builds one fully connected set of services: store, lifecycle, aggregator,
estimator, ranker, tracker, dashboard. The lifecycle notifies the
aggregator and the dashboard after every write, so cached windows and the
dashboard view are invalidated without the write path doing any
recomputation itself.
"""
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from healthwatch.shared.catalog import ReferenceCatalog
from healthwatch.shared.config import EngineConfig
from healthwatch.shared.database import ConnectionManager, get_connection_manager
from healthwatch.shared.errors import NotFoundError
from healthwatch.shared.models import Actor, BayesianParameter
from healthwatch.services.action_service import ActionTracker
from healthwatch.services.analytics_service import (
    Aggregator,
    BayesianRiskEstimator,
    DashboardService,
    Forecaster,
    HotspotEventPublisher,
    HotspotRanker,
    HttpForecastClient,
    PredictionService,
)
from healthwatch.services.audit_service import AuditLogger
from healthwatch.services.report_service import (
    InMemoryReportStore,
    LifecycleManager,
    PostgresReportStore,
    ReportStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Every service of one HealthWatch deployment."""
    config: EngineConfig
    catalog: ReferenceCatalog
    store: ReportStore
    audit_logger: AuditLogger
    lifecycle: LifecycleManager
    aggregator: Aggregator
    estimator: BayesianRiskEstimator
    ranker: HotspotRanker
    tracker: ActionTracker
    predictions: PredictionService
    dashboard: DashboardService
    publisher: Optional[HotspotEventPublisher] = None
    connection_manager: Optional[ConnectionManager] = None

    def override_risk(self, location_id: str, probability: float, actor: Actor) -> BayesianParameter:
        """Force a location's outbreak probability and mark the dashboard dirty.

        Raises:
            NotFoundError: If the location is not in the catalog
        """
        if not self.catalog.has_location(location_id):
            raise NotFoundError(f"Location {location_id} not found")
        param = self.estimator.override(location_id, probability, actor)
        self.dashboard.mark_dirty()
        return param

    def set_baseline(self, location_id: str, rate: float, actor: Actor) -> float:
        """Pin a location's expected reports per window and mark the dashboard dirty.

        Raises:
            NotFoundError: If the location is not in the catalog
        """
        if not self.catalog.has_location(location_id):
            raise NotFoundError(f"Location {location_id} not found")
        self.estimator.set_baseline(location_id, rate, actor)
        self.dashboard.mark_dirty()
        return float(rate)

    def readiness(self) -> Dict[str, Any]:
        if self.connection_manager is None:
            return {"status": "ready", "store": self.config.store_backend}
        db = self.connection_manager.health_check()
        status = "ready" if db.get("healthy") else "not_ready"
        return {"status": status, "store": self.config.store_backend, "database": db}

    def shutdown(self) -> None:
        self.predictions.shutdown()
        if self.connection_manager is not None:
            self.connection_manager.close()
        logger.info("ENGINE_SHUTDOWN")


def build_engine(
    config: Optional[EngineConfig] = None,
    catalog: Optional[ReferenceCatalog] = None,
    store: Optional[ReportStore] = None,
    forecaster: Optional[Forecaster] = None,
    publisher: Optional[HotspotEventPublisher] = None,
    connection_manager: Optional[ConnectionManager] = None,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> Engine:
    """Wire a complete engine.

    Args:
        config: Engine configuration (defaults to EngineConfig())
        catalog: Locations and symptoms (defaults to the built-in set)
        store: Report store (injected for testing); otherwise chosen by
            ``config.store_backend``
        forecaster: Forecasting collaborator; an HttpForecastClient is
            built when ``config.forecast_endpoint`` is set
        publisher: Hotspot event publisher; built from config if omitted
        connection_manager: PostgreSQL pool for the postgres backend
        clock: Source of "now" for every service

    Returns:
        Engine with all write listeners registered
    """
    config = config or EngineConfig()
    catalog = catalog or ReferenceCatalog.default()

    if store is None:
        if config.store_backend == "postgres":
            connection_manager = connection_manager or get_connection_manager()
            postgres_store = PostgresReportStore(connection_manager)
            postgres_store.create_schema()
            store = postgres_store
        else:
            store = InMemoryReportStore()

    audit_logger = AuditLogger()
    lifecycle = LifecycleManager(
        store,
        catalog,
        audit_logger=audit_logger,
        clock=clock,
        transition_retries=config.transition_retries,
    )
    aggregator = Aggregator(store, window=timedelta(hours=config.window_hours))
    estimator = BayesianRiskEstimator(aggregator, config=config, audit_logger=audit_logger, clock=clock)
    ranker = HotspotRanker(config=config)
    tracker = ActionTracker(catalog=catalog, audit_logger=audit_logger, clock=clock)

    if forecaster is None and config.forecast_endpoint:
        forecaster = HttpForecastClient(
            config.forecast_endpoint,
            timeout_seconds=config.forecast_timeout_seconds,
            api_key=os.getenv("HEALTHWATCH_FORECAST_API_KEY"),
        )
    predictions = PredictionService(
        forecaster=forecaster,
        timeout_seconds=config.forecast_timeout_seconds,
        horizon=config.forecast_horizon,
    )

    if publisher is None:
        publisher = HotspotEventPublisher(
            stream_name=config.hotspot_stream_name,
            enabled=config.hotspot_events_enabled,
        )

    dashboard = DashboardService(
        aggregator,
        estimator,
        ranker,
        tracker,
        catalog,
        predictions=predictions,
        publisher=publisher,
        clock=clock,
    )

    lifecycle.add_write_listener(aggregator.on_report_written)
    lifecycle.add_write_listener(dashboard.mark_dirty)

    logger.info(
        "ENGINE_BUILT",
        extra={
            "store_backend": config.store_backend,
            "window_hours": config.window_hours,
            "locations": len(catalog.location_ids()),
            "forecasting_enabled": predictions.available,
            "hotspot_events_enabled": publisher.enabled,
        }
    )

    return Engine(
        config=config,
        catalog=catalog,
        store=store,
        audit_logger=audit_logger,
        lifecycle=lifecycle,
        aggregator=aggregator,
        estimator=estimator,
        ranker=ranker,
        tracker=tracker,
        predictions=predictions,
        dashboard=dashboard,
        publisher=publisher,
        connection_manager=connection_manager,
    )
