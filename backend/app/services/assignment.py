# backend/app/services/assignment.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app import settings
from app.clock import utcnow
from app.db import SessionLocal
from app.models.mission_order import MissionOrder
from app.services import store
from app.services.lifecycle import apply_event
from app.services.notifications import add_notification, report_batch_failures
from app.services.pollers import Poller
from app.workflow.engine import RULES
from app.workflow.errors import ConcurrentModificationError, PermissionDenied
from app.workflow.states import SYSTEM_ACTOR, Actor, MissionEvent, MissionStatus

logger = logging.getLogger(__name__)

ZERO_HOUR_CONTRACT = "0-hour"


@dataclass
class AssignmentResult:
    mission: MissionOrder
    contract_generated: bool


def _zero_hour_contract(mission: MissionOrder) -> dict:
    now = utcnow()
    return {
        **mission.contract,
        "contract_generated": True,
        "contract_generated_at": now.isoformat(),
        "contract_type": ZERO_HOUR_CONTRACT,
        "contract_number": f"CTR-{mission.id}-{int(time.time() * 1000)}",
    }


def assign_to_crew(
    db: Session,
    mission_id: str,
    actor: Actor,
    generate_contract: bool = True,
) -> AssignmentResult:
    """
    Bind an approved mission to its crew. Freelancer crew get a 0-hour
    contract the first time. Calling it again on an assigned mission is a no-op.
    """
    if actor.role not in RULES[MissionEvent.ASSIGN_TO_CREW].roles:
        raise PermissionDenied(f"Role '{actor.role.value}' may not assign missions to crew")
    mission = store.fetch_mission(db, mission_id)
    if mission.assigned_to_crew_at is not None and mission.status != MissionStatus.APPROVED.value:
        return AssignmentResult(mission, False)

    crew = mission.crew or {}
    contract = mission.contract
    generated = False
    if generate_contract and crew.get("type") == "freelancer" and not contract.get("contract_generated"):
        contract = _zero_hour_contract(mission)
        generated = True

    mission = apply_event(
        db,
        mission,
        MissionEvent.ASSIGN_TO_CREW,
        actor,
        payload={"crew_id": crew.get("id")},
        values={"contract": contract},
        stamp="assigned_to_crew_at",
    )
    if generated:
        logger.info(f"[assignment] {mission.id}: 0-hour contract {contract['contract_number']} generated")
    return AssignmentResult(mission, generated)


class AssignmentScheduler(Poller):
    """
    Binds approved missions to their crew on a fixed interval.

    Eligibility is re-read from the database every tick; a failed mission
    simply stays eligible for the next one. Ids being assigned are tracked so
    overlapping ticks never work on the same mission twice.
    """

    name = "assignment-scheduler"

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        assign: Callable[..., AssignmentResult] = assign_to_crew,
        interval: Optional[float] = None,
    ):
        super().__init__(session_factory, settings.ASSIGNMENT_POLL_SECONDS if interval is None else interval)
        self._assign = assign
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    def eligible(self, db: Session) -> list[str]:
        return list(
            db.scalars(
                select(MissionOrder.id)
                .where(
                    MissionOrder.status == MissionStatus.APPROVED.value,
                    MissionOrder.assigned_to_crew_at.is_(None),
                    MissionOrder.crew_id.is_not(None),
                    MissionOrder.crew_id != "",
                )
                .order_by(MissionOrder.created_at)
            ).all()
        )

    def _claim(self, mission_id: str) -> bool:
        with self._lock:
            if mission_id in self._in_flight:
                return False
            self._in_flight.add(mission_id)
            return True

    def _release(self, mission_id: str) -> None:
        with self._lock:
            self._in_flight.discard(mission_id)

    def _assign_once(self, db: Session, mission_id: str) -> AssignmentResult:
        try:
            return self._assign(db, mission_id, SYSTEM_ACTOR)
        except store.CONNECTIVITY_ERRORS:
            db.rollback()
            raise

    def run_once(self, db: Session) -> dict:
        ids = self.eligible(db)
        db.rollback()  # end the read transaction before the per-mission writes

        assigned, skipped, failures = 0, 0, []
        for mission_id in ids:
            if self.stopping:
                break
            if not self._claim(mission_id):
                skipped += 1
                continue
            try:
                store.with_retries(
                    lambda: self._assign_once(db, mission_id),
                    what=f"assignment of {mission_id}",
                )
                assigned += 1
            except ConcurrentModificationError:
                # another actor moved it first; nothing left to do
                db.rollback()
                skipped += 1
            except Exception as e:
                db.rollback()
                logger.exception(f"[assignment] {mission_id}: assignment failed")
                failures.append(f"{mission_id}: {e}")
                add_notification(
                    db,
                    "error",
                    "Crew assignment failed",
                    f"Mission {mission_id} could not be assigned to its crew: {e}",
                    "system",
                    target_role="admin",
                    metadata={
                        "mission_id": mission_id,
                        "action": "assign_to_crew",
                        "action_url": f"/missions/{mission_id}",
                    },
                )
                db.commit()
            finally:
                self._release(mission_id)

        if failures:
            report_batch_failures(db, "Crew assignment", failures, len(ids))
            db.commit()
        if ids:
            logger.info(
                f"[assignment] tick: {assigned} assigned, {len(failures)} failed, {skipped} skipped of {len(ids)}"
            )
        return {"eligible": len(ids), "assigned": assigned, "failed": len(failures), "skipped": skipped}
