from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from app.models.notification import Notification
from app.schemas.mission_order import ServiceInvoice, ValidationIn
from app.services import execution
from app.services.assignment import assign_to_crew
from app.workflow.errors import MissionValidationError, PermissionDenied, TransitionError
from app.workflow.states import MissionStatus
from tests._harness import (
    ADMIN,
    CREW,
    OTHER_CREW,
    make_mission,
    status_of,
    to_approved,
    to_in_progress,
    to_mission_over,
)

S = MissionStatus


def _invoice(**overrides) -> ServiceInvoice:
    data = {
        "lines": [
            {"id": "l1", "description": "Crew days", "quantity": 5, "unit_price": 200, "total": 1000, "category": "contract"},
            {"id": "l2", "description": "Hotel", "quantity": 2, "unit_price": 100, "total": 200, "category": "expense"},
        ],
        "contract_subtotal": 1000,
        "expenses_subtotal": 200,
        "subtotal": 1200,
        "tax_rate": 20,
        "tax_amount": 240,
        "total": 1440,
        "currency": "EUR",
        "invoice_number": "INV-001",
        "invoice_date": "2026-03-06",
    }
    data.update(overrides)
    return ServiceInvoice.model_validate(data)


def test_start_requires_crew_membership(db):
    m = make_mission(db)
    to_approved(db, m.id)
    assign_to_crew(db, m.id, ADMIN)
    with pytest.raises(PermissionDenied):
        execution.start_execution(db, m.id, OTHER_CREW)
    assert status_of(db, m.id) == S.PENDING_EXECUTION

    m = execution.start_execution(db, m.id, CREW)
    assert m.status == S.IN_PROGRESS.value
    assert m.execution_started_at is not None


def test_complete_on_contract_date_needs_no_reason(db):
    m = make_mission(db)
    m = to_mission_over(db, m.id, date(2026, 3, 5))
    assert m.status == S.MISSION_OVER.value
    assert m.was_extended is False
    assert m.extension_reason is None
    assert m.actual_end_date == date(2026, 3, 5)


def test_complete_on_other_date_needs_reason(db):
    m = make_mission(db)
    to_in_progress(db, m.id)
    with pytest.raises(MissionValidationError):
        execution.complete_execution(db, m.id, CREW, date(2026, 3, 7))
    assert status_of(db, m.id) == S.IN_PROGRESS

    m = execution.complete_execution(db, m.id, CREW, date(2026, 3, 7), extension_reason="Aircraft AOG")
    assert m.was_extended is True
    assert m.extension_reason == "Aircraft AOG"


def test_early_end_also_counts_as_extension(db):
    m = make_mission(db)
    to_in_progress(db, m.id)
    m = execution.complete_execution(db, m.id, CREW, date(2026, 3, 3), extension_reason="Released early")
    assert m.was_extended is True


def test_validation_requires_rib(db):
    m = make_mission(db)
    to_mission_over(db, m.id)
    with pytest.raises(MissionValidationError):
        execution.submit_validation(db, m.id, CREW, ValidationIn(rib_confirmed=False))
    assert status_of(db, m.id) == S.MISSION_OVER


def test_issues_are_reported_but_do_not_block(db):
    m = make_mission(db)
    to_mission_over(db, m.id)
    m = execution.submit_validation(
        db,
        m.id,
        CREW,
        ValidationIn(rib_confirmed=True, issues_reported=["late hotel"], payment_issue=True),
    )
    assert m.status == S.VALIDATED.value
    assert m.validated_at is not None
    assert m.validation["issues_reported"] == ["late hotel"]

    warning = db.scalars(
        select(Notification).where(Notification.entity_id == m.id, Notification.title == "Issues reported on validation")
    ).one()
    assert "late hotel" in warning.message
    assert "payment issue" in warning.message


def test_service_mission_waits_for_invoice(db):
    m = make_mission(db, type="service", crew_type="employee")
    to_mission_over(db, m.id)

    m = execution.submit_validation(db, m.id, CREW, ValidationIn(rib_confirmed=True))
    assert m.status == S.PENDING_VALIDATION.value
    assert m.validated_at is None

    m = execution.update_service_invoice(db, m.id, CREW, _invoice())
    assert m.status == S.VALIDATED.value
    assert m.service_invoice["total"] == 1440
    assert m.validated_at is not None


def test_invoice_before_validation_is_stored_only(db):
    m = make_mission(db, type="service", crew_type="employee")
    to_in_progress(db, m.id)

    m = execution.update_service_invoice(db, m.id, CREW, _invoice())
    assert m.status == S.IN_PROGRESS.value
    assert m.service_invoice["invoice_number"] == "INV-001"


def test_service_mission_with_invoice_validates_directly(db):
    m = make_mission(db, type="service", crew_type="employee")
    to_mission_over(db, m.id)
    execution.update_service_invoice(db, m.id, CREW, _invoice())

    m = execution.submit_validation(db, m.id, CREW, ValidationIn(rib_confirmed=True))
    assert m.status == S.VALIDATED.value


@pytest.mark.parametrize(
    "overrides",
    [
        {"total": 1500},
        {"tax_amount": 100, "total": 1300},
        {"subtotal": 1100, "tax_amount": 220, "total": 1320},
        {"contract_subtotal": 900, "subtotal": 1100, "tax_amount": 220, "total": 1320},
    ],
)
def test_inconsistent_invoice_is_rejected(db, overrides):
    m = make_mission(db, type="service", crew_type="employee")
    to_in_progress(db, m.id)
    with pytest.raises(MissionValidationError):
        execution.update_service_invoice(db, m.id, CREW, _invoice(**overrides))


def test_invoice_rules(db):
    m = make_mission(db)
    to_in_progress(db, m.id)
    with pytest.raises(MissionValidationError):
        execution.update_service_invoice(db, m.id, CREW, _invoice())

    svc = make_mission(db, type="service", crew_type="employee")
    to_in_progress(db, svc.id)
    with pytest.raises(PermissionDenied):
        execution.update_service_invoice(db, svc.id, OTHER_CREW, _invoice())


def test_invoice_on_terminal_mission_is_rejected(db):
    m = make_mission(db, type="service", crew_type="employee")
    to_mission_over(db, m.id)
    execution.update_service_invoice(db, m.id, ADMIN, _invoice())
    execution.submit_validation(db, m.id, CREW, ValidationIn(rib_confirmed=True))
    assert status_of(db, m.id) == S.VALIDATED
    with pytest.raises(TransitionError):
        execution.update_service_invoice(db, m.id, CREW, _invoice())
