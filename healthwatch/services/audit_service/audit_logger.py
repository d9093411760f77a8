"""Audit logger - append-only, hash-chained record of every lifecycle write.

Reporter identities are hashed before they reach an entry; administrators
are recorded by their staff identifier.
"""
import hashlib
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

GENESIS_HASH = "genesis"


class AuditAction(Enum):
    """Writes that must leave an audit trail."""
    REPORT_SUBMITTED = "report_submitted"
    REPORT_STATUS_CHANGED = "report_status_changed"
    ACTION_CREATED = "action_created"
    ACTION_STATUS_CHANGED = "action_status_changed"
    RISK_OVERRIDDEN = "risk_overridden"
    BASELINE_CHANGED = "baseline_changed"


class AuditEntity(Enum):
    """Entity types an audit entry can refer to."""
    REPORT = "report"
    ACTION = "action"
    LOCATION = "location"


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit entry chained to its predecessor."""
    entry_id: str
    timestamp: datetime
    action: AuditAction
    entity_type: AuditEntity
    entity_id: str
    actor_id: str
    actor_role: str
    details: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""
    entry_hash: str = ""

    def compute_hash(self) -> str:
        """SHA-256 over the canonical JSON of every field except entry_hash."""
        content = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }
        return hashlib.sha256(json.dumps(content, sort_keys=True, default=str).encode()).hexdigest()


class AuditLogger:
    """In-process audit trail with chain verification."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[AuditEntry] = []
        self._last_hash = GENESIS_HASH

        logger.info("AUDIT_LOGGER_INITIALIZED")

    def log(
        self,
        action: AuditAction,
        entity_type: AuditEntity,
        entity_id: str,
        actor_id: str,
        actor_role: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Append an entry and advance the chain.

        Logs:
            - AUDIT_ENTRY_CREATED: After the entry is stored
        """
        with self._lock:
            entry = AuditEntry(
                entry_id=f"audit_{uuid.uuid4().hex[:16]}",
                timestamp=datetime.utcnow(),
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                actor_role=actor_role,
                details=dict(details or {}),
                previous_hash=self._last_hash,
            )
            entry = replace(entry, entry_hash=entry.compute_hash())

            self._entries.append(entry)
            self._last_hash = entry.entry_hash

        logger.info(
            "AUDIT_ENTRY_CREATED",
            extra={
                "entry_id": entry.entry_id,
                "audit_action": action.value,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "actor_role": actor_role,
                "entry_hash": entry.entry_hash[:16],
            }
        )
        return entry

    def verify_chain(self) -> bool:
        """Return False if any entry was altered or the chain was broken."""
        with self._lock:
            entries = list(self._entries)

        expected_prev = GENESIS_HASH
        for entry in entries:
            if entry.previous_hash != expected_prev:
                logger.critical(
                    "AUDIT_CHAIN_VERIFICATION_FAILED",
                    extra={
                        "entry_id": entry.entry_id,
                        "expected_prev": expected_prev[:16],
                        "actual_prev": entry.previous_hash[:16],
                    }
                )
                return False

            computed = entry.compute_hash()
            if computed != entry.entry_hash:
                logger.critical(
                    "AUDIT_ENTRY_HASH_MISMATCH",
                    extra={
                        "entry_id": entry.entry_id,
                        "computed": computed[:16],
                        "stored": entry.entry_hash[:16],
                    }
                )
                return False

            expected_prev = entry.entry_hash

        logger.info("AUDIT_CHAIN_VERIFIED", extra={"entry_count": len(entries)})
        return True

    def query(
        self,
        entity_type: Optional[AuditEntity] = None,
        entity_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        since: Optional[datetime] = None,
    ) -> List[AuditEntry]:
        with self._lock:
            results = list(self._entries)

        if entity_type:
            results = [e for e in results if e.entity_type == entity_type]
        if entity_id:
            results = [e for e in results if e.entity_id == entity_id]
        if action:
            results = [e for e in results if e.action == action]
        if since:
            results = [e for e in results if e.timestamp >= since]

        return results
