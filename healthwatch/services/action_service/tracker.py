"""Action Tracker - administrator remediation tasks.

Actions move strictly pending -> in-progress -> completed. They are created
by administrators or automatically when a location newly becomes a hotspot;
a location never gets a second open action.
"""
import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from healthwatch.shared.catalog import ReferenceCatalog
from healthwatch.shared.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from healthwatch.shared.models import (
    ACTION_TRANSITIONS,
    ActionChange,
    ActionStatus,
    Actor,
    HotspotData,
    SuggestedAction,
)
from healthwatch.services.audit_service import AuditAction, AuditEntity, AuditLogger

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 500


def parse_action_status(value: Union[str, ActionStatus]) -> ActionStatus:
    if isinstance(value, ActionStatus):
        return value
    try:
        return ActionStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ActionStatus)
        raise ValidationError(f"Unknown action status '{value}'. Expected one of: {allowed}")


class ActionTracker:
    """Owns every SuggestedAction and its transitions."""

    def __init__(
        self,
        catalog: Optional[ReferenceCatalog] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.catalog = catalog
        self.audit_logger = audit_logger or AuditLogger()
        self.clock = clock

        self._lock = threading.RLock()
        self._actions: Dict[str, SuggestedAction] = {}
        self._last_hotspots: Set[str] = set()

        logger.info("ACTION_TRACKER_INITIALIZED")

    def create_action(
        self,
        description: str,
        actor: Actor,
        location_id: Optional[str] = None,
    ) -> SuggestedAction:
        """Create a pending action on behalf of an administrator.

        Raises:
            AuthorizationError: If the actor is not an administrator
            ValidationError: If the description is empty or too long
            NotFoundError: If ``location_id`` is not in the catalog
        """
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can create actions")
        if not isinstance(description, str) or not description.strip():
            raise ValidationError("description is required")
        description = description.strip()
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"description must be at most {MAX_DESCRIPTION_LENGTH} characters")
        if location_id is not None and self.catalog is not None and not self.catalog.has_location(location_id):
            raise NotFoundError(f"Location {location_id} not found")

        with self._lock:
            action = self._store_new(description, actor, location_id)
        return action

    def auto_create_from_hotspots(
        self,
        hotspots: Iterable[HotspotData],
        cycle_id: Optional[str] = None,
    ) -> List[SuggestedAction]:
        """Create one action per hotspot that just crossed the threshold.

        A hotspot "just crossed" if it was absent from the previous call's
        hotspot list. Locations that already have an open action are
        skipped, so replaying a snapshot never duplicates actions.

        Logs:
            - ACTIONS_AUTO_CREATED: When at least one action was created
        """
        hotspots = list(hotspots)
        system = Actor.system()
        created: List[SuggestedAction] = []

        with self._lock:
            for hotspot in hotspots:
                if hotspot.location_id in self._last_hotspots:
                    continue
                if self._open_action_for(hotspot.location_id) is not None:
                    continue
                created.append(
                    self._store_new(
                        self._describe(hotspot),
                        system,
                        hotspot.location_id,
                        hotspot=hotspot,
                        cycle_id=cycle_id,
                    )
                )
            self._last_hotspots = {h.location_id for h in hotspots}

        if created:
            logger.info(
                "ACTIONS_AUTO_CREATED",
                extra={
                    "cycle_id": cycle_id,
                    "count": len(created),
                    "locations": [a.location_id for a in created],
                }
            )
        return created

    def transition_action(
        self,
        action_id: str,
        actor: Actor,
        next_status: Union[str, ActionStatus],
    ) -> SuggestedAction:
        """Advance an action one step.

        Raises:
            AuthorizationError: If the actor is not an administrator
            ValidationError: If ``next_status`` is not a known status
            NotFoundError: If the action does not exist
            InvalidTransitionError: If the edge is not allowed
        """
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can update actions")
        requested = parse_action_status(next_status)

        with self._lock:
            current = self._actions.get(action_id)
            if current is None:
                raise NotFoundError(f"Action {action_id} not found")
            if requested not in ACTION_TRANSITIONS[current.status]:
                raise InvalidTransitionError("action", current.status.value, requested.value)

            updated = current.with_status(requested, actor.actor_id, self.clock())
            self.audit_logger.log(
                action=AuditAction.ACTION_STATUS_CHANGED,
                entity_type=AuditEntity.ACTION,
                entity_id=action_id,
                actor_id=actor.actor_id,
                actor_role=actor.role.value,
                details={"from": current.status.value, "to": requested.value},
            )
            self._actions[action_id] = updated

        logger.info(
            "ACTION_STATUS_CHANGED",
            extra={
                "action_id": action_id,
                "from_status": current.status.value,
                "to_status": requested.value,
                "actor_id": actor.actor_id,
            }
        )
        return updated

    def get(self, action_id: str) -> SuggestedAction:
        with self._lock:
            action = self._actions.get(action_id)
        if action is None:
            raise NotFoundError(f"Action {action_id} not found")
        return action

    def list_actions(self) -> List[SuggestedAction]:
        """All actions, open ones first, newest first within each group."""
        with self._lock:
            actions = list(self._actions.values())
        actions.sort(key=lambda a: a.created_at, reverse=True)
        actions.sort(key=lambda a: not a.is_open)
        return actions

    def open_actions(self) -> List[SuggestedAction]:
        return [a for a in self.list_actions() if a.is_open]

    def _open_action_for(self, location_id: str) -> Optional[SuggestedAction]:
        for action in self._actions.values():
            if action.location_id == location_id and action.is_open:
                return action
        return None

    def _describe(self, hotspot: HotspotData) -> str:
        location = self.catalog.location(hotspot.location_id) if self.catalog else None
        place = location.name if location and location.name else hotspot.location_id
        return (
            f"Investigate illness cluster in {place}: {hotspot.report_count} reports this window, "
            f"outbreak probability {hotspot.risk_score:.0%}"
        )

    def _store_new(
        self,
        description: str,
        actor: Actor,
        location_id: Optional[str],
        hotspot: Optional[HotspotData] = None,
        cycle_id: Optional[str] = None,
    ) -> SuggestedAction:
        """Audit and then store a new action; nothing is stored if auditing fails."""
        now = self.clock()
        action = SuggestedAction(
            id=f"act_{uuid.uuid4().hex[:12]}",
            description=description,
            status=ActionStatus.PENDING,
            created_at=now,
            created_by=actor.actor_id,
            location_id=location_id,
            hotspot=hotspot,
            cycle_id=cycle_id,
            history=(ActionChange(ActionStatus.PENDING, actor.actor_id, now),),
        )

        self.audit_logger.log(
            action=AuditAction.ACTION_CREATED,
            entity_type=AuditEntity.ACTION,
            entity_id=action.id,
            actor_id=actor.actor_id,
            actor_role=actor.role.value,
            details={"location_id": location_id, "cycle_id": cycle_id},
        )
        self._actions[action.id] = action

        logger.info(
            "ACTION_CREATED",
            extra={
                "action_id": action.id,
                "location_id": location_id,
                "auto_generated": hotspot is not None,
            }
        )
        return action
