"""Shared utilities for HealthWatch services."""
from .pii import hash_pii, fingerprint_note, configure_pii_salt, configure_pii_salt_from_env

__all__ = ["hash_pii", "fingerprint_note", "configure_pii_salt", "configure_pii_salt_from_env"]
