"""Shared models, configuration and infrastructure for HealthWatch services."""
