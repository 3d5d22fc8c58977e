from __future__ import annotations

import pytest

from app.models.notification import Notification
from app.services import approvals
from app.workflow.errors import MissionValidationError, PermissionDenied, TransitionError
from app.workflow.states import MissionStatus
from tests._harness import ADMIN, CREW, FINANCE, OWNER, make_mission, status_of, to_client_approval

S = MissionStatus


def test_gated_happy_path_records_decisions(db):
    m = make_mission(db)
    assert m.status == S.PENDING_FINANCE_REVIEW.value

    m = approvals.finance_approve(db, m.id, FINANCE, "client@example.com", "percentage", 10)
    assert m.status == S.FINANCE_APPROVED.value
    assert m.finance_approved_at is not None
    assert m.finance_decision["actor_id"] == FINANCE.id
    assert m.email_data["fees"]["total_with_margin"] == 1375

    m = approvals.request_owner_approval(db, m.id, FINANCE)
    assert m.status == S.WAITING_OWNER_APPROVAL.value

    m = approvals.owner_approve(db, m.id, OWNER, comments="ok for me")
    assert m.status == S.PENDING_CLIENT_APPROVAL.value
    assert m.owner_decision["comments"] == "ok for me"
    assert m.email_data["subject"] == f"Mission Order Approval Required - {m.id}"

    m = approvals.record_client_decision(db, m.id, ADMIN, approved=True, comments="by phone")
    assert m.status == S.APPROVED.value
    assert m.client_response["approved"] is True
    assert m.client_response["recorded_by"] == ADMIN.id
    assert m.client_approved_at is not None
    assert m.approved_at is not None


def test_email_sent_is_informational(db):
    m = make_mission(db)
    to_client_approval(db, m.id)

    m = approvals.mark_client_email_sent(db, m.id, ADMIN)
    assert m.status == S.PENDING_CLIENT_APPROVAL.value
    assert m.email_data["sent_at"] is not None
    first_sent = m.client_email_sent_at

    # second call changes nothing
    m = approvals.mark_client_email_sent(db, m.id, ADMIN)
    assert m.client_email_sent_at == first_sent


def test_email_sent_outside_client_gate_is_rejected(db):
    m = make_mission(db)
    with pytest.raises(TransitionError):
        approvals.mark_client_email_sent(db, m.id, ADMIN)


@pytest.mark.parametrize("actor", [ADMIN, FINANCE, OWNER, CREW])
def test_reject_without_reason_fails_for_every_role(db, actor):
    m = make_mission(db)
    with pytest.raises(MissionValidationError):
        approvals.reject(db, m.id, actor, "   ")
    assert status_of(db, m.id) == S.PENDING_FINANCE_REVIEW


def test_owner_reject_is_terminal_with_reason(db):
    m = make_mission(db)
    approvals.finance_approve(db, m.id, FINANCE, "client@example.com")
    approvals.request_owner_approval(db, m.id, FINANCE)
    m = approvals.owner_reject(db, m.id, OWNER, "Too expensive")
    assert m.status == S.OWNER_REJECTED.value
    assert m.rejection_reason == "Too expensive"
    assert m.owner_rejected_at is not None
    with pytest.raises(TransitionError):
        approvals.owner_approve(db, m.id, OWNER)


def test_client_reject_requires_reason(db):
    m = make_mission(db)
    to_client_approval(db, m.id)
    with pytest.raises(MissionValidationError):
        approvals.record_client_decision(db, m.id, ADMIN, approved=False)
    m = approvals.record_client_decision(db, m.id, ADMIN, approved=False, reason="Dates do not suit")
    assert m.status == S.CLIENT_REJECTED.value
    assert m.client_response["rejection_reason"] == "Dates do not suit"


def test_only_admin_records_client_decision(db):
    m = make_mission(db)
    to_client_approval(db, m.id)
    with pytest.raises(PermissionDenied):
        approvals.record_client_decision(db, m.id, OWNER, approved=True)


def test_generic_approve_dispatches_by_gate(db):
    m = make_mission(db)
    m = approvals.approve(db, m.id, FINANCE, owner_email="client@example.com", margin_value=5)
    assert m.status == S.FINANCE_APPROVED.value
    m = approvals.approve(db, m.id, FINANCE)
    assert m.status == S.WAITING_OWNER_APPROVAL.value
    m = approvals.approve(db, m.id, OWNER)
    assert m.status == S.PENDING_CLIENT_APPROVAL.value
    m = approvals.approve(db, m.id, ADMIN)
    assert m.status == S.APPROVED.value
    with pytest.raises(TransitionError):
        approvals.approve(db, m.id, ADMIN)


def test_legacy_gate(db):
    m = make_mission(db, workflow="legacy")
    assert m.status == S.PENDING_APPROVAL.value
    with pytest.raises(TransitionError):
        approvals.finance_approve(db, m.id, FINANCE, "client@example.com")
    m = approvals.approve(db, m.id, ADMIN)
    assert m.status == S.APPROVED.value


def test_finance_reject(db):
    m = make_mission(db)
    m = approvals.finance_reject(db, m.id, FINANCE, "Rates too high")
    assert m.status == S.REJECTED.value
    assert m.finance_decision["decision"] == "rejected"


def test_margin_update_regenerates_fees(db):
    m = make_mission(db)
    approvals.finance_approve(db, m.id, FINANCE, "client@example.com", "percentage", 10)
    m = approvals.update_margin(db, m.id, FINANCE, "fixed", 200)
    assert m.email_data["fees"]["margin"] == 200
    assert m.email_data["fees"]["total_with_margin"] == 1450
    assert m.status == S.FINANCE_APPROVED.value

    with pytest.raises(PermissionDenied):
        approvals.update_margin(db, m.id, CREW, "fixed", 0)


def test_cancel_and_close(db):
    m = make_mission(db)
    with pytest.raises(MissionValidationError):
        approvals.cancel(db, m.id, ADMIN, "")
    m = approvals.cancel(db, m.id, ADMIN, "Aircraft grounded")
    assert m.status == S.CANCELLED.value
    assert m.cancellation_reason == "Aircraft grounded"
    with pytest.raises(TransitionError):
        approvals.close(db, m.id, FINANCE)


def test_owner_is_notified_when_approval_is_requested(db):
    m = make_mission(db)
    approvals.finance_approve(db, m.id, FINANCE, "client@example.com")
    approvals.request_owner_approval(db, m.id, FINANCE)
    owner_notices = db.query(Notification).filter(Notification.target_role == "owner").all()
    assert len(owner_notices) == 1
    assert owner_notices[0].meta["mission_id"] == m.id
