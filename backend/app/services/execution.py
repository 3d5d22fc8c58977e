# backend/app/services/execution.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.clock import utcnow
from app.models.mission_order import MissionOrder
from app.schemas.mission_order import ServiceInvoice, ValidationIn
from app.services import store
from app.services.activity import log_activity
from app.services.lifecycle import apply_event, require_crew_member
from app.services.notifications import add_notification
from app.workflow.engine import requires_extension, transition
from app.workflow.errors import MissionValidationError, PermissionDenied, TransitionError
from app.workflow.states import Actor, ActorRole, MissionEvent, MissionStatus, MissionType, is_terminal

logger = logging.getLogger(__name__)

E = MissionEvent
S = MissionStatus

INVOICE_ROLES = (ActorRole.CREW, ActorRole.ADMIN)
CENT = 0.01


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _close(a: float, b: float) -> bool:
    return abs(round(a, 2) - round(b, 2)) <= CENT + 1e-9


def check_invoice_totals(invoice: ServiceInvoice) -> None:
    """Lines must add up to the subtotals, and subtotal + tax to the total."""
    contract_sum = expenses_sum = 0.0
    for line in invoice.lines:
        if not _close(line.quantity * line.unit_price, line.total):
            raise MissionValidationError(f"Invoice line '{line.id}' total does not match quantity x unit price")
        if line.category == "contract":
            contract_sum += line.total
        else:
            expenses_sum += line.total

    if not _close(contract_sum, invoice.contract_subtotal):
        raise MissionValidationError("contract_subtotal does not match the contract lines")
    if not _close(expenses_sum, invoice.expenses_subtotal):
        raise MissionValidationError("expenses_subtotal does not match the expense lines")
    if not _close(invoice.contract_subtotal + invoice.expenses_subtotal, invoice.subtotal):
        raise MissionValidationError("subtotal must equal contract_subtotal + expenses_subtotal")
    if not _close(invoice.subtotal * invoice.tax_rate / 100, invoice.tax_amount):
        raise MissionValidationError("tax_amount does not match subtotal x tax_rate")
    if not _close(invoice.subtotal + invoice.tax_amount, invoice.total):
        raise MissionValidationError("total must equal subtotal + tax_amount")


def _validation_submitted(mission: MissionOrder) -> bool:
    return bool((mission.validation or {}).get("submitted_at"))


# ----------------------------------------------------------------------
# Crew actions
# ----------------------------------------------------------------------
def start_execution(db: Session, mission_id: str, actor: Actor) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    require_crew_member(mission, actor)
    return apply_event(db, mission, E.START_EXECUTION, actor, stamp="execution_started_at")


def complete_execution(
    db: Session,
    mission_id: str,
    actor: Actor,
    actual_end_date: date,
    extension_reason: Optional[str] = None,
) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    require_crew_member(mission, actor)

    contract_end = date.fromisoformat(mission.contract["end_date"])
    extended = requires_extension(actual_end_date, contract_end)
    payload = {
        "actual_end_date": actual_end_date,
        "contract_end_date": contract_end,
        "extension_reason": extension_reason,
    }
    return apply_event(
        db,
        mission,
        E.COMPLETE_EXECUTION,
        actor,
        payload=payload,
        values={
            "actual_end_date": actual_end_date,
            "was_extended": extended,
            "extension_reason": (extension_reason or "").strip() or None if extended else None,
        },
        stamp="execution_completed_at",
    )


def submit_validation(db: Session, mission_id: str, actor: Actor, data: ValidationIn) -> MissionOrder:
    """
    Crew confirmation after the mission. Reported issues are stored and raised
    to admins but never block validation; a service mission without an
    invoice total parks in pending_validation until the invoice arrives.
    """
    mission = store.fetch_mission(db, mission_id)
    require_crew_member(mission, actor)

    payload = {
        "rib_confirmed": data.rib_confirmed,
        "mission_type": mission.type,
        "invoice_total": (mission.service_invoice or {}).get("total"),
    }
    target = transition(mission.status, E.SUBMIT_VALIDATION, actor.role, payload)

    now = utcnow()
    validation = {**(mission.validation or {}), **data.model_dump(mode="json"), "submitted_at": now.isoformat()}
    values = {"validation": validation}
    stamp = None
    if target == S.VALIDATED:
        validation["validated_at"] = now.isoformat()
        stamp = "validated_at"
    else:
        validation.setdefault("requested_at", now.isoformat())
        values["validation_requested_at"] = now

    if data.issues_reported or data.payment_issue:
        details = list(data.issues_reported)
        if data.payment_issue:
            details.append(f"payment issue: {data.payment_issue_details or 'no details'}")
        add_notification(
            db,
            "warning",
            "Issues reported on validation",
            f"Crew reported issues on mission {mission.id}: " + "; ".join(details),
            "validation",
            target_role=ActorRole.ADMIN.value,
            metadata={
                "mission_id": mission.id,
                "issues_reported": data.issues_reported,
                "payment_issue": data.payment_issue,
                "action_url": f"/missions/{mission.id}",
            },
        )

    return apply_event(db, mission, E.SUBMIT_VALIDATION, actor, payload=payload, values=values, stamp=stamp)


def update_service_invoice(db: Session, mission_id: str, actor: Actor, invoice: ServiceInvoice) -> MissionOrder:
    """
    Store the invoice of a service mission. Once the crew has validated and the
    mission waits in pending_validation, the invoice completes validation.
    """
    mission = store.fetch_mission(db, mission_id)
    status = MissionStatus(mission.status)
    if mission.type != MissionType.SERVICE.value:
        raise MissionValidationError("Only service missions carry a service invoice")
    if is_terminal(status):
        raise TransitionError(status, "update_service_invoice")
    if actor.role not in INVOICE_ROLES:
        raise PermissionDenied(f"Role '{actor.role.value}' may not edit invoices")
    require_crew_member(mission, actor)
    check_invoice_totals(invoice)

    data = invoice.model_dump(mode="json")
    if status == S.PENDING_VALIDATION and _validation_submitted(mission):
        now = utcnow()
        validation = {**(mission.validation or {}), "validated_at": now.isoformat()}
        return apply_event(
            db,
            mission,
            E.ATTACH_INVOICE,
            actor,
            payload={
                "mission_type": mission.type,
                "validation_submitted": True,
                "invoice_total": invoice.total,
            },
            values={"service_invoice": data, "validation": validation},
            stamp="validated_at",
        )

    store.compare_and_set(db, mission, status, {"service_invoice": data})
    log_activity(
        db,
        "service_invoice_updated",
        f"invoice {invoice.invoice_number}: {invoice.total:.2f} {invoice.currency}",
        actor.id,
        mission_id=mission.id,
    )
    return store.commit(db, mission)
