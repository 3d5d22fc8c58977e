# backend/app/services/lifecycle.py
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.clock import utcnow
from app.models.mission_order import MissionOrder
from app.services import store
from app.services.activity import log_activity
from app.services.notifications import add_notification, notify_transition
from app.workflow.crew import is_crew_member
from app.workflow.engine import transition
from app.workflow.errors import PermissionDenied
from app.workflow.states import Actor, ActorRole, MissionEvent, MissionStatus

logger = logging.getLogger(__name__)

CREATOR_ROLES = (ActorRole.ADMIN, ActorRole.SYSTEM)


def apply_event(
    db: Session,
    mission: MissionOrder,
    event: MissionEvent,
    actor: Actor,
    payload: Optional[dict[str, Any]] = None,
    values: Optional[dict[str, Any]] = None,
    stamp: Optional[str] = None,
    notify: bool = True,
    reason: Optional[str] = None,
) -> MissionOrder:
    """
    Validate ``event`` against the mission's current status, persist the new
    status plus ``values`` with a compare-and-set, then log and notify in the
    same transaction. ``stamp`` names the lifecycle timestamp to set to now.
    """
    current = MissionStatus(mission.status)
    target = transition(current, event, actor.role, payload)

    vals = dict(values or {})
    vals["status"] = target.value
    if stamp:
        vals[stamp] = utcnow()
    store.compare_and_set(db, mission, current, vals)

    log_activity(
        db,
        event.value,
        f"{current.value} -> {target.value}",
        actor.id,
        mission_id=mission.id,
        metadata={"from": current.value, "to": target.value, "role": actor.role.value},
    )
    if notify:
        notify_transition(db, mission, event, actor, reason=reason)

    store.commit(db, mission)
    logger.info(f"[lifecycle] {mission.id}: {event.value} {current.value} -> {target.value} by {actor.id}")
    return mission


def decision_record(decision: str, actor: Actor, comments: Optional[str] = None, reason: Optional[str] = None) -> dict:
    return {
        "decision": decision,
        "actor_id": actor.id,
        "actor_role": actor.role.value,
        "decided_at": utcnow().isoformat(),
        "comments": comments,
        "reason": reason,
    }


def create_mission(db: Session, data, actor: Actor) -> MissionOrder:
    """Persist a new mission order in the initial status of its workflow variant."""
    if actor.role not in CREATOR_ROLES:
        raise PermissionDenied(f"Role '{actor.role.value}' may not create mission orders")
    mission = store.create_mission(db, data, actor)
    first_gate = "finance" if mission.status == MissionStatus.PENDING_FINANCE_REVIEW.value else "admin"
    log_activity(
        db,
        "mission_created",
        f"{mission.type} mission created ({mission.workflow})",
        actor.id,
        mission_id=mission.id,
        metadata={"status": mission.status},
    )
    add_notification(
        db,
        "info",
        "New mission order",
        f"Mission {mission.id} for {(mission.crew or {}).get('name') or 'crew'} is awaiting review.",
        "mission",
        target_role=first_gate,
        metadata={"mission_id": mission.id, "action_url": f"/missions/{mission.id}"},
    )
    store.commit(db, mission)
    logger.info(f"[lifecycle] {mission.id}: created by {actor.id} in {mission.status}")
    return mission


def require_crew_member(mission: MissionOrder, actor: Actor) -> None:
    """Crew may only act on missions they fly; admins and the system bypass the check."""
    if actor.role != ActorRole.CREW:
        return
    if not is_crew_member(mission.crew, actor.id):
        raise PermissionDenied("You are not a crew member on this mission")
