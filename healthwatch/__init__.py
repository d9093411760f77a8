"""HealthWatch: health-signal lifecycle and outbreak-risk aggregation engine."""

__version__ = "0.1.0"
