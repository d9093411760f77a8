"""Engine configuration.

All numeric constants of the risk pipeline are configuration, not code.
Defaults are tuned so that a location with a baseline of 2 reports per
window crosses the hotspot threshold at about 8 reports in one window.
"""
import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for aggregation, risk estimation and ranking."""

    # Aggregation windows
    window_hours: int = 24

    # Bayesian risk estimation
    baseline_prior: float = 0.01
    default_baseline_rate: float = 2.0      # Expected reports per window with no history
    expected_floor: float = 0.5             # Keeps the expected count away from zero
    baseline_windows: int = 14              # History used for a location's baseline rate
    outbreak_rate_multiplier: float = 3.0   # Outbreak hypothesis: rate x baseline
    max_likelihood_ratio: float = 1000.0
    min_probability: float = 0.001          # Quiet locations approach this, never reach it
    max_probability: float = 0.9999
    max_catchup_windows: int = 30
    staleness_windows: int = 3

    # Hotspot ranking
    hotspot_threshold: float = 0.3
    trend_epsilon: float = 0.01

    # Forecasting collaborator
    forecast_endpoint: Optional[str] = None
    forecast_timeout_seconds: float = 2.0
    forecast_horizon: int = 3

    # Lifecycle
    transition_retries: int = 3

    # Storage and events
    store_backend: str = "memory"           # "memory" or "postgres"
    hotspot_events_enabled: bool = False
    hotspot_stream_name: str = "healthwatch-hotspot-events"

    def __post_init__(self):
        if self.window_hours <= 0:
            raise ValueError(f"window_hours must be positive, got {self.window_hours}")
        if not 0.0 < self.baseline_prior < 1.0:
            raise ValueError(f"baseline_prior must be in (0, 1), got {self.baseline_prior}")
        if not 0.0 <= self.min_probability < self.max_probability < 1.0:
            raise ValueError("probability clamp must satisfy 0 <= min < max < 1")
        if self.outbreak_rate_multiplier <= 1.0:
            raise ValueError("outbreak_rate_multiplier must be greater than 1")
        if self.expected_floor <= 0.0:
            raise ValueError("expected_floor must be positive")
        if self.max_likelihood_ratio <= 1.0:
            raise ValueError("max_likelihood_ratio must be greater than 1")
        if self.store_backend not in ("memory", "postgres"):
            raise ValueError(f"Unknown store backend: {self.store_backend}")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create config from environment variables.

        Environment variables:
            HEALTHWATCH_WINDOW_HOURS: Aggregation window size (default 24)
            HEALTHWATCH_BASELINE_PRIOR: Prior for new locations (default 0.01)
            HEALTHWATCH_DEFAULT_BASELINE_RATE: Expected reports per window (default 2.0)
            HEALTHWATCH_HOTSPOT_THRESHOLD: Minimum risk to rank (default 0.3)
            HEALTHWATCH_FORECAST_ENDPOINT: Forecasting service URL (optional)
            HEALTHWATCH_FORECAST_TIMEOUT: Forecast timeout seconds (default 2.0)
            HEALTHWATCH_STORE_BACKEND: memory or postgres (default memory)
            HEALTHWATCH_HOTSPOT_EVENTS: Publish hotspot events (default false)
            HEALTHWATCH_HOTSPOT_STREAM: Kinesis stream name
        """
        defaults = cls()
        return cls(
            window_hours=int(os.getenv("HEALTHWATCH_WINDOW_HOURS", str(defaults.window_hours))),
            baseline_prior=float(os.getenv("HEALTHWATCH_BASELINE_PRIOR", str(defaults.baseline_prior))),
            default_baseline_rate=float(
                os.getenv("HEALTHWATCH_DEFAULT_BASELINE_RATE", str(defaults.default_baseline_rate))
            ),
            baseline_windows=int(os.getenv("HEALTHWATCH_BASELINE_WINDOWS", str(defaults.baseline_windows))),
            outbreak_rate_multiplier=float(
                os.getenv("HEALTHWATCH_OUTBREAK_MULTIPLIER", str(defaults.outbreak_rate_multiplier))
            ),
            hotspot_threshold=float(
                os.getenv("HEALTHWATCH_HOTSPOT_THRESHOLD", str(defaults.hotspot_threshold))
            ),
            forecast_endpoint=os.getenv("HEALTHWATCH_FORECAST_ENDPOINT") or None,
            forecast_timeout_seconds=float(
                os.getenv("HEALTHWATCH_FORECAST_TIMEOUT", str(defaults.forecast_timeout_seconds))
            ),
            forecast_horizon=int(os.getenv("HEALTHWATCH_FORECAST_HORIZON", str(defaults.forecast_horizon))),
            store_backend=os.getenv("HEALTHWATCH_STORE_BACKEND", defaults.store_backend),
            hotspot_events_enabled=_env_bool("HEALTHWATCH_HOTSPOT_EVENTS", defaults.hotspot_events_enabled),
            hotspot_stream_name=os.getenv("HEALTHWATCH_HOTSPOT_STREAM", defaults.hotspot_stream_name),
        )
