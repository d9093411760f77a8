"""Reporter identifier hashing.

Student identifiers never appear raw in application logs or audit entries.
They are replaced by a salted SHA-256 digest that is stable for the life of
the salt, so one reporter's activity can still be correlated.
"""
import hashlib
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

MIN_SALT_LENGTH = 32

_PII_SALT: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Configure the salt used for hashing reporter identifiers.

    Must be called during application startup before any hashing.

    Args:
        salt: Secret salt value (at least 32 characters)

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": MIN_SALT_LENGTH}
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def configure_pii_salt_from_env(default: Optional[str] = None) -> None:
    """Configure the salt from ``PII_HASH_SALT``, falling back to ``default``."""
    configure_pii_salt(os.getenv("PII_HASH_SALT") or default or "")


def hash_pii(value: str) -> str:
    """Hash a reporter identifier for logging and audit storage.

    Raises:
        RuntimeError: If the salt has not been configured

    Example:
        >>> hash_pii("student-4471")
        '5e0b1f...'  # 64-char hex string
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    return hashlib.sha256(f"{_PII_SALT}{value}".encode()).hexdigest()


def fingerprint_note(note: Optional[str]) -> Optional[str]:
    """Unsalted digest of a free-text note, so audit entries never hold its content."""
    if not note:
        return None
    return hashlib.sha256(note.encode()).hexdigest()
