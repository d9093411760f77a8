"""Suggested remediation actions tracked for administrators."""
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from .risk import HotspotData


class ActionStatus(Enum):
    """Lifecycle states of a suggested action."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


# Strictly linear: no skipping, no going back, completed is terminal.
ACTION_TRANSITIONS: Dict[ActionStatus, FrozenSet[ActionStatus]] = {
    ActionStatus.PENDING: frozenset({ActionStatus.IN_PROGRESS}),
    ActionStatus.IN_PROGRESS: frozenset({ActionStatus.COMPLETED}),
    ActionStatus.COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class ActionChange:
    """One entry in an action's status history."""
    status: ActionStatus
    actor_id: str
    timestamp: datetime


@dataclass(frozen=True)
class SuggestedAction:
    """Administrator remediation task, optionally seeded by a hotspot."""
    id: str
    description: str
    status: ActionStatus
    created_at: datetime
    created_by: str
    location_id: Optional[str] = None
    hotspot: Optional[HotspotData] = None
    cycle_id: Optional[str] = None
    history: Tuple[ActionChange, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.status != ActionStatus.COMPLETED

    @property
    def auto_generated(self) -> bool:
        return self.hotspot is not None

    def with_status(self, status: ActionStatus, actor_id: str, timestamp: datetime) -> "SuggestedAction":
        return replace(
            self,
            status=status,
            history=self.history + (ActionChange(status, actor_id, timestamp),),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "location": self.location_id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() + "Z",
            "createdBy": self.created_by,
            "autoGenerated": self.auto_generated,
            "hotspot": self.hotspot.to_dict() if self.hotspot else None,
            "cycleId": self.cycle_id,
        }
