"""Health report domain models.

Reports are immutable values. The Lifecycle Manager produces a new
HealthReport for every status transition and swaps it into the store,
so a half-applied transition can never be observed.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class Role(Enum):
    """Roles an authenticated actor can hold."""
    STUDENT = "student"
    ADMIN = "admin"
    SYSTEM = "system"       # Automated pipeline (auto-created actions)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller identity, passed into every core operation."""
    actor_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def system(cls) -> "Actor":
        return cls(actor_id="system", role=Role.SYSTEM)


class ReportStatus(Enum):
    """Lifecycle states of a health report."""
    PENDING = "pending"
    INVESTIGATING = "investigating"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


# pending -> investigating -> reviewed -> resolved, plus pending -> resolved.
REPORT_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.PENDING: frozenset({ReportStatus.INVESTIGATING, ReportStatus.RESOLVED}),
    ReportStatus.INVESTIGATING: frozenset({ReportStatus.REVIEWED}),
    ReportStatus.REVIEWED: frozenset({ReportStatus.RESOLVED}),
    ReportStatus.RESOLVED: frozenset(),
}


def can_transition(current: ReportStatus, requested: ReportStatus) -> bool:
    return requested in REPORT_TRANSITIONS[current]


@dataclass(frozen=True)
class StatusChange:
    """One entry in a report's status history."""
    status: ReportStatus
    actor_id: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "actor": self.actor_id,
            "timestamp": self.timestamp.isoformat() + "Z",
        }


@dataclass(frozen=True)
class HealthReport:
    """A single student-submitted symptom report."""
    id: str
    reporter_id: str
    symptoms: Tuple[str, ...]
    location_id: str
    status: ReportStatus
    created_at: datetime
    status_history: Tuple[StatusChange, ...]
    note: Optional[str] = None
    version: int = 1

    def __post_init__(self):
        if not self.symptoms:
            raise ValueError("A report must name at least one symptom")
        if not self.status_history:
            raise ValueError("A report must carry its status history")
        if self.status_history[-1].status != self.status:
            raise ValueError(
                f"Last history entry ({self.status_history[-1].status.value}) "
                f"does not match status ({self.status.value})"
            )
        for earlier, later in zip(self.status_history, self.status_history[1:]):
            if later.timestamp < earlier.timestamp:
                raise ValueError("Status history must be time-ordered")

    def with_status(self, status: ReportStatus, actor_id: str, timestamp: datetime) -> "HealthReport":
        """Return a copy advanced to ``status`` with the history entry appended.

        The timestamp is pinned to the last history entry if the clock stepped
        backwards, so the history stays monotonic.
        """
        timestamp = max(timestamp, self.status_history[-1].timestamp)
        return replace(
            self,
            status=status,
            status_history=self.status_history + (StatusChange(status, actor_id, timestamp),),
            version=self.version + 1,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reporterId": self.reporter_id,
            "symptoms": list(self.symptoms),
            "location": self.location_id,
            "note": self.note,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() + "Z",
            "statusHistory": [change.to_dict() for change in self.status_history],
        }


@dataclass(frozen=True)
class Location:
    """Aggregation unit: a room inside a building."""
    id: str
    building: str
    room: str
    name: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "building": self.building,
            "room": self.room,
            "name": self.name or self.room,
        }


@dataclass(frozen=True)
class Symptom:
    """Reference entry for a reportable symptom."""
    id: str
    name: str
    category: str
    icon: str = "Circle"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.id,
            "name": self.name,
            "category": self.category,
            "icon": self.icon,
        }
