"""Lifecycle Manager - the only writer into the Report Store.

Enforces who may create and transition reports and which status edges
are legal. Transitions on one report are serialized by a per-report lock;
the store's version check covers writers in other processes.
"""
import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Union

from healthwatch.shared.catalog import ReferenceCatalog
from healthwatch.shared.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from healthwatch.shared.models import (
    Actor,
    HealthReport,
    ReportStatus,
    Role,
    StatusChange,
    can_transition,
)
from healthwatch.shared.utils import fingerprint_note, hash_pii
from healthwatch.services.audit_service import AuditAction, AuditEntity, AuditLogger
from .report_store import ReportStore

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 2000

WriteListener = Callable[[HealthReport], None]


def parse_report_status(value: Union[str, ReportStatus]) -> ReportStatus:
    if isinstance(value, ReportStatus):
        return value
    try:
        return ReportStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ReportStatus)
        raise ValidationError(f"Unknown report status '{value}'. Expected one of: {allowed}")


class LifecycleManager:
    """Validates, creates and transitions health reports."""

    def __init__(
        self,
        store: ReportStore,
        catalog: ReferenceCatalog,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        transition_retries: int = 3,
    ):
        self.store = store
        self.catalog = catalog
        self.audit_logger = audit_logger or AuditLogger()
        self.clock = clock
        self.transition_retries = max(1, transition_retries)

        self._listeners: List[WriteListener] = []
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        logger.info(
            "LIFECYCLE_MANAGER_INITIALIZED",
            extra={"transition_retries": self.transition_retries}
        )

    def add_write_listener(self, listener: WriteListener) -> None:
        """Register a callback run after every successful write."""
        self._listeners.append(listener)

    def submit_report(
        self,
        actor: Actor,
        symptoms: Iterable[str],
        location_id: str,
        note: Optional[str] = None,
    ) -> HealthReport:
        """Create a new report in ``pending`` status.

        Args:
            actor: Reporting student
            symptoms: Symptom identifiers (at least one)
            location_id: Catalog location identifier
            note: Optional free-text note

        Returns:
            The stored HealthReport

        Raises:
            AuthorizationError: If the actor is not a student
            ValidationError: If symptoms are empty or any identifier is unknown

        Logs:
            - REPORT_SUBMITTED: After the report is stored
        """
        if actor.role != Role.STUDENT:
            raise AuthorizationError("Only students can submit health reports")

        symptom_ids = self._validate_symptoms(symptoms)
        if not location_id or not isinstance(location_id, str):
            raise ValidationError("location is required")
        if not self.catalog.has_location(location_id):
            raise ValidationError(f"Unknown location '{location_id}'")
        note = self._validate_note(note)

        now = self.clock()
        report = HealthReport(
            id=f"rpt_{uuid.uuid4().hex[:12]}",
            reporter_id=actor.actor_id,
            symptoms=symptom_ids,
            location_id=location_id,
            note=note,
            status=ReportStatus.PENDING,
            created_at=now,
            status_history=(StatusChange(ReportStatus.PENDING, actor.actor_id, now),),
        )
        self.store.add(report)

        reporter_hash = hash_pii(actor.actor_id)
        logger.info(
            "REPORT_SUBMITTED",
            extra={
                "report_id": report.id,
                "reporter_hash": reporter_hash,
                "location_id": location_id,
                "symptom_count": len(symptom_ids),
            }
        )
        self.audit_logger.log(
            action=AuditAction.REPORT_SUBMITTED,
            entity_type=AuditEntity.REPORT,
            entity_id=report.id,
            actor_id=reporter_hash,
            actor_role=actor.role.value,
            details={
                "location_id": location_id,
                "symptoms": list(symptom_ids),
                "note_fingerprint": fingerprint_note(note),
            },
        )

        self._notify(report)
        return report

    def transition_status(
        self,
        report_id: str,
        actor: Actor,
        next_status: Union[str, ReportStatus],
    ) -> HealthReport:
        """Move a report along the status state machine.

        Raises:
            AuthorizationError: If the actor is not an administrator
            ValidationError: If ``next_status`` is not a known status
            NotFoundError: If the report does not exist
            InvalidTransitionError: If the edge is not allowed
            ConcurrentModificationError: If the version check kept failing
        """
        if not actor.is_admin:
            logger.warning(
                "REPORT_TRANSITION_DENIED",
                extra={"report_id": report_id, "actor_role": actor.role.value}
            )
            raise AuthorizationError("Only administrators can change report status")

        requested = parse_report_status(next_status)

        with self._lock_for(report_id):
            for attempt in range(1, self.transition_retries + 1):
                current = self.store.get(report_id)
                if current is None:
                    raise NotFoundError(f"Report {report_id} not found")

                if not can_transition(current.status, requested):
                    logger.info(
                        "REPORT_TRANSITION_REJECTED",
                        extra={
                            "report_id": report_id,
                            "current": current.status.value,
                            "requested": requested.value,
                        }
                    )
                    raise InvalidTransitionError("report", current.status.value, requested.value)

                updated = current.with_status(requested, actor.actor_id, self.clock())
                if self.store.replace(updated, expected_version=current.version):
                    break

                logger.warning(
                    "REPORT_TRANSITION_RETRY",
                    extra={"report_id": report_id, "attempt": attempt}
                )
            else:
                raise ConcurrentModificationError(
                    f"Report {report_id} was modified concurrently; retry the request"
                )

        logger.info(
            "REPORT_STATUS_CHANGED",
            extra={
                "report_id": report_id,
                "from_status": current.status.value,
                "to_status": requested.value,
                "actor_id": actor.actor_id,
                "version": updated.version,
            }
        )
        self.audit_logger.log(
            action=AuditAction.REPORT_STATUS_CHANGED,
            entity_type=AuditEntity.REPORT,
            entity_id=report_id,
            actor_id=actor.actor_id,
            actor_role=actor.role.value,
            details={"from": current.status.value, "to": requested.value},
        )

        self._notify(updated)
        return updated

    def get_report(self, report_id: str, actor: Actor) -> HealthReport:
        """Fetch one report; administrators see all, students only their own."""
        report = self.store.get(report_id)
        if report is None or not (actor.is_admin or report.reporter_id == actor.actor_id):
            raise NotFoundError(f"Report {report_id} not found")
        return report

    def list_reports(self, actor: Actor) -> List[HealthReport]:
        """All reports, newest first (administrators only)."""
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can list all reports")
        return sorted(self.store.list_all(), key=lambda r: r.created_at, reverse=True)

    def list_my_reports(self, actor: Actor) -> List[HealthReport]:
        """Reports created by the calling reporter, newest first."""
        reports = self.store.list_by_reporter(actor.actor_id)
        return sorted(reports, key=lambda r: r.created_at, reverse=True)

    def _validate_symptoms(self, symptoms: Iterable[str]) -> tuple:
        if symptoms is None or isinstance(symptoms, str):
            raise ValidationError("symptoms must be a list of symptom identifiers")

        symptom_ids = []
        for symptom_id in symptoms:
            if not isinstance(symptom_id, str) or not symptom_id:
                raise ValidationError("symptom identifiers must be non-empty strings")
            if symptom_id not in symptom_ids:
                symptom_ids.append(symptom_id)

        if not symptom_ids:
            raise ValidationError("At least one symptom is required")

        unknown = [s for s in symptom_ids if not self.catalog.has_symptom(s)]
        if unknown:
            raise ValidationError(f"Unknown symptoms: {', '.join(unknown)}")

        return tuple(symptom_ids)

    def _validate_note(self, note: Optional[str]) -> Optional[str]:
        if note is None:
            return None
        if not isinstance(note, str):
            raise ValidationError("note must be a string")
        note = note.strip()
        if len(note) > MAX_NOTE_LENGTH:
            raise ValidationError(f"note must be at most {MAX_NOTE_LENGTH} characters")
        return note or None

    def _lock_for(self, report_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(report_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[report_id] = lock
            return lock

    def _notify(self, report: HealthReport) -> None:
        # The write is already committed; a failing listener only delays
        # derived data until the next recomputation.
        for listener in self._listeners:
            try:
                listener(report)
            except Exception:
                logger.exception(
                    "REPORT_WRITE_LISTENER_FAILED",
                    extra={"report_id": report.id}
                )
