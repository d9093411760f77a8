"""Analytics Service: aggregation, risk estimation, hotspots, dashboard.

Report counts are bucketed per (location, window); each window updates a
Bayesian outbreak probability per location; locations above the hotspot
threshold are ranked and surfaced on the admin dashboard along with
forecasts from the external forecasting service.
"""

from .aggregator import Aggregator, AggregationSnapshot, floor_to_window
from .bayesian import BayesianRiskEstimator
from .hotspots import HotspotRanker
from .forecasting import Forecaster, HttpForecastClient, PredictionService
from .hotspot_publisher import HotspotEventPublisher, HotspotEvent
from .dashboard import DashboardService, DashboardStats, DashboardView

__all__ = [
    "Aggregator",
    "AggregationSnapshot",
    "floor_to_window",
    "BayesianRiskEstimator",
    "HotspotRanker",
    "Forecaster",
    "HttpForecastClient",
    "PredictionService",
    "HotspotEventPublisher",
    "HotspotEvent",
    "DashboardService",
    "DashboardStats",
    "DashboardView",
]
