from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from app.models.notification import Notification
from app.services import approvals
from app.services.notifications import (
    EMAIL_PENDING,
    add_notification,
    list_for,
    mark_all_read,
    mark_read,
    scan_pending_client_emails,
    urgency_for,
)
from tests._harness import ADMIN, CREW, FINANCE, OTHER_CREW, make_mission, to_client_approval


@pytest.mark.parametrize(
    "hours,expected",
    [(0, "normal"), (7.9, "normal"), (8, "urgent"), (23.5, "urgent"), (24, "critical"), (100, "critical")],
)
def test_urgency_thresholds(hours, expected):
    assert urgency_for(hours) == expected


def _email_notices(db, mission_id):
    db.expire_all()
    return db.scalars(
        select(Notification)
        .where(Notification.entity_id == mission_id, Notification.category == EMAIL_PENDING)
        .order_by(Notification.id)
    ).all()


def test_scan_escalates_without_duplicates(db):
    m = make_mission(db)
    m = to_client_approval(db, m.id)
    since = m.owner_approved_at

    assert scan_pending_client_emails(db, now=since + timedelta(hours=1))["notified"] == 1
    assert scan_pending_client_emails(db, now=since + timedelta(hours=2))["notified"] == 0

    assert scan_pending_client_emails(db, now=since + timedelta(hours=9))["notified"] == 1
    # still urgent on the next pass: nothing new
    assert scan_pending_client_emails(db, now=since + timedelta(hours=10))["notified"] == 0

    assert scan_pending_client_emails(db, now=since + timedelta(hours=30))["notified"] == 1

    notices = _email_notices(db, m.id)
    assert [n.urgency for n in notices] == ["normal", "urgent", "critical"]
    assert [n.type for n in notices] == ["info", "warning", "error"]
    assert notices[-1].meta["action"] == "send_client_email"
    assert notices[-1].meta["client_email"] == "client@example.com"
    assert notices[-1].target_role == "admin"


def test_read_notice_does_not_reopen_same_urgency(db):
    m = make_mission(db)
    m = to_client_approval(db, m.id)
    since = m.owner_approved_at

    scan_pending_client_emails(db, now=since + timedelta(hours=9))
    mark_all_read(db, ADMIN)
    assert scan_pending_client_emails(db, now=since + timedelta(hours=12))["notified"] == 0


def test_sent_email_is_not_scanned(db):
    m = make_mission(db)
    m = to_client_approval(db, m.id)
    approvals.mark_client_email_sent(db, m.id, ADMIN)

    result = scan_pending_client_emails(db, now=m.owner_approved_at + timedelta(hours=30))
    assert result == {"scanned": 0, "notified": 0, "failed": 0}
    assert _email_notices(db, m.id) == []


def test_missions_outside_client_gate_are_ignored(db):
    make_mission(db)
    assert scan_pending_client_emails(db)["scanned"] == 0


def test_inbox_is_scoped_to_user_and_role(db):
    add_notification(db, "info", "for crew-1", "m", "mission", target_user_id=CREW.id)
    add_notification(db, "info", "for admins", "m", "mission", target_role="admin")
    add_notification(db, "info", "for everyone", "m", "mission")
    db.commit()

    assert {n.title for n in list_for(db, CREW)} == {"for crew-1", "for everyone"}
    assert {n.title for n in list_for(db, OTHER_CREW)} == {"for everyone"}
    assert {n.title for n in list_for(db, ADMIN)} == {"for admins", "for everyone"}
    assert {n.title for n in list_for(db, FINANCE)} == {"for everyone"}


def test_mark_read_respects_visibility(db):
    n = add_notification(db, "info", "for crew-1", "m", "mission", target_user_id=CREW.id)
    db.commit()

    assert mark_read(db, n.id, OTHER_CREW) is None
    updated = mark_read(db, n.id, CREW)
    assert updated.read is True
    assert list_for(db, CREW, unread_only=True) == []


def test_transition_notices_fan_out_to_each_crew_member(db):
    m = make_mission(db)
    approvals.cancel(db, m.id, ADMIN, "Aircraft grounded")

    rows = db.scalars(
        select(Notification).where(Notification.entity_id == m.id, Notification.title == "Mission cancelled")
    ).all()
    targets = sorted((n.target_user_id or "", n.target_role or "") for n in rows)
    assert targets == [("", "admin"), ("crew-1", ""), ("crew-2", "")]
    assert all("Aircraft grounded" in n.message for n in rows)
