"""Report Store: durable record of health reports and their history.

The store holds immutable HealthReport values. Writers replace a report
with a compare-and-swap on its version; readers take point-in-time
snapshots for the aggregation pipeline.
"""
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from healthwatch.shared.database import DuplicateError
from healthwatch.shared.models import HealthReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSnapshot:
    """Point-in-time view of every report, tagged with the store revision."""
    reports: Tuple[HealthReport, ...]
    revision: int


class ReportStore(ABC):
    """Interface shared by the in-memory and PostgreSQL stores."""

    @abstractmethod
    def add(self, report: HealthReport) -> HealthReport:
        """Persist a new report. Raises DuplicateError if the id exists."""

    @abstractmethod
    def get(self, report_id: str) -> Optional[HealthReport]:
        """Return the current value of a report, or None."""

    @abstractmethod
    def replace(self, report: HealthReport, expected_version: int) -> bool:
        """Swap in ``report`` if the stored version equals ``expected_version``."""

    @abstractmethod
    def list_all(self) -> List[HealthReport]:
        """All reports, oldest first."""

    @abstractmethod
    def list_by_reporter(self, reporter_id: str) -> List[HealthReport]:
        """Reports created by one reporter, oldest first."""

    @abstractmethod
    def list_in_window(self, location_id: str, start: datetime, end: datetime) -> List[HealthReport]:
        """Reports at ``location_id`` with ``start <= created_at < end``, oldest first."""

    @abstractmethod
    def snapshot(self) -> StoreSnapshot:
        """Consistent view of every report for one aggregation pass."""

    @abstractmethod
    def location_revision(self, location_id: str) -> int:
        """Counter bumped on every write touching ``location_id``."""


class InMemoryReportStore(ReportStore):
    """Thread-safe in-process store used in development and tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self._reports: Dict[str, HealthReport] = {}
        self._order: List[str] = []
        self._revision = 0
        self._location_revisions: Dict[str, int] = defaultdict(int)

        logger.info("REPORT_STORE_INITIALIZED", extra={"backend": "memory"})

    def add(self, report: HealthReport) -> HealthReport:
        with self._lock:
            if report.id in self._reports:
                raise DuplicateError(f"Report {report.id} already exists")
            self._reports[report.id] = report
            self._order.append(report.id)
            self._bump(report.location_id)
        return report

    def get(self, report_id: str) -> Optional[HealthReport]:
        with self._lock:
            return self._reports.get(report_id)

    def replace(self, report: HealthReport, expected_version: int) -> bool:
        with self._lock:
            current = self._reports.get(report.id)
            if current is None or current.version != expected_version:
                logger.warning(
                    "REPORT_VERSION_CONFLICT",
                    extra={
                        "report_id": report.id,
                        "expected_version": expected_version,
                        "stored_version": current.version if current else None,
                    }
                )
                return False
            self._reports[report.id] = report
            self._bump(report.location_id)
        return True

    def list_all(self) -> List[HealthReport]:
        with self._lock:
            return [self._reports[report_id] for report_id in self._order]

    def list_by_reporter(self, reporter_id: str) -> List[HealthReport]:
        return [r for r in self.list_all() if r.reporter_id == reporter_id]

    def list_in_window(self, location_id: str, start: datetime, end: datetime) -> List[HealthReport]:
        return [
            r for r in self.list_all()
            if r.location_id == location_id and start <= r.created_at < end
        ]

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(
                reports=tuple(self._reports[report_id] for report_id in self._order),
                revision=self._revision,
            )

    def location_revision(self, location_id: str) -> int:
        with self._lock:
            return self._location_revisions[location_id]

    def _bump(self, location_id: str) -> None:
        self._revision += 1
        self._location_revisions[location_id] += 1
