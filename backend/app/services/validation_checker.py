# backend/app/services/validation_checker.py
import logging
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app import settings
from app.clock import utcnow
from app.db import SessionLocal
from app.models.mission_order import MissionOrder
from app.services.lifecycle import apply_event
from app.services.notifications import report_batch_failures
from app.services.pollers import Poller
from app.workflow.errors import ConcurrentModificationError, TransitionError
from app.workflow.states import SYSTEM_ACTOR, MissionEvent, MissionStatus

logger = logging.getLogger(__name__)


def _window_end(mission: MissionOrder) -> Optional[date]:
    if mission.actual_end_date is not None:
        return mission.actual_end_date
    end = (mission.contract or {}).get("end_date")
    return date.fromisoformat(end) if end else None


def check_for_validation(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Move finished missions whose execution window has elapsed into
    pending_validation. Running it twice changes nothing the second time.
    """
    today = (now or utcnow()).date()
    rows = db.scalars(
        select(MissionOrder).where(MissionOrder.status == MissionStatus.MISSION_OVER.value)
    ).all()

    updated, failures, due = 0, [], 0
    for mission in rows:
        end = _window_end(mission)
        if end is None or end >= today:
            continue
        due += 1
        try:
            stamp_time = utcnow().isoformat()
            apply_event(
                db,
                mission,
                MissionEvent.REQUEST_VALIDATION,
                SYSTEM_ACTOR,
                values={"validation": {**(mission.validation or {}), "requested_at": stamp_time}},
                stamp="validation_requested_at",
            )
            updated += 1
        except (ConcurrentModificationError, TransitionError):
            # already moved on by someone else
            db.rollback()
        except Exception as e:
            db.rollback()
            logger.exception(f"[validation] {mission.id}: could not request validation")
            failures.append(f"{mission.id}: {e}")

    if failures:
        report_batch_failures(db, "Validation check", failures, due)
        db.commit()
    if updated:
        logger.info(f"[validation] {updated} mission(s) moved to pending_validation")
    return {"updated": updated}


class ValidationChecker(Poller):
    """Runs on start, then every VALIDATION_POLL_SECONDS."""

    name = "validation-checker"

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, interval: Optional[float] = None):
        super().__init__(
            session_factory,
            settings.VALIDATION_POLL_SECONDS if interval is None else interval,
            run_immediately=True,
        )

    def run_once(self, session: Session) -> dict:
        return check_for_validation(session)
