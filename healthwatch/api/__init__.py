"""HTTP API for HealthWatch."""

from .server import app, get_engine, set_engine

__all__ = [
    "app",
    "get_engine",
    "set_engine",
]
