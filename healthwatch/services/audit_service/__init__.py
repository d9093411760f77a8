"""Audit Service: append-only trail of report and action writes.

Every report submission and transition, action creation and transition,
and risk override is recorded with a SHA-256 hash chain so tampering is
detectable by verify_chain().
"""

from .audit_logger import AuditLogger, AuditAction, AuditEntity, AuditEntry

__all__ = [
    "AuditLogger",
    "AuditAction",
    "AuditEntity",
    "AuditEntry",
]
