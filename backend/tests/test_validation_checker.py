from __future__ import annotations

from datetime import date, datetime

from app.db import SessionLocal
from app.services import execution
from app.services.validation_checker import ValidationChecker, check_for_validation
from app.workflow.states import MissionStatus
from tests._harness import CREW, make_mission, status_of, to_in_progress, to_mission_over

S = MissionStatus


def test_finished_mission_moves_once(db):
    m = make_mission(db)
    to_mission_over(db, m.id, date(2026, 3, 5))

    assert check_for_validation(db, now=datetime(2026, 3, 10, 9, 0)) == {"updated": 1}
    assert check_for_validation(db, now=datetime(2026, 3, 10, 9, 30)) == {"updated": 0}

    db.expire_all()
    assert status_of(db, m.id) == S.PENDING_VALIDATION


def test_window_not_elapsed_is_left_alone(db):
    m = make_mission(db)
    to_mission_over(db, m.id, date(2026, 3, 5))

    assert check_for_validation(db, now=datetime(2026, 3, 5, 23, 0)) == {"updated": 0}
    assert status_of(db, m.id) == S.MISSION_OVER


def test_actual_end_date_wins_over_contract(db):
    m = make_mission(db)
    to_in_progress(db, m.id)

    execution.complete_execution(db, m.id, CREW, date(2026, 3, 12), extension_reason="Delayed ferry")

    assert check_for_validation(db, now=datetime(2026, 3, 10))["updated"] == 0
    assert check_for_validation(db, now=datetime(2026, 3, 13))["updated"] == 1


def test_missions_still_in_progress_are_ignored(db):
    m = make_mission(db)
    to_in_progress(db, m.id)
    assert check_for_validation(db, now=datetime(2027, 1, 1)) == {"updated": 0}
    assert status_of(db, m.id) == S.IN_PROGRESS


def test_checker_tick_uses_its_own_session(db):
    m = make_mission(db)
    to_mission_over(db, m.id, date(2026, 3, 5))
    # real clock is past March 2026
    assert ValidationChecker(SessionLocal, interval=60).tick() == {"updated": 1}
    assert status_of(db, m.id) == S.PENDING_VALIDATION
