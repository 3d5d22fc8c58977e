# backend/app/workflow/engine.py
"""
Mission state transition engine.

``transition(status, event, role, payload)`` is pure: it validates the edge,
the payload and the actor role, and returns the next status. Callers persist
the result and emit notifications.

Checks run in a fixed order: source state, then payload, then role. A
rejection without a reason therefore fails validation whoever sends it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Mapping, Optional

from app import settings
from app.workflow.errors import MissionValidationError, PermissionDenied, TransitionError
from app.workflow.states import (
    CANCELLABLE_STATES,
    EXECUTABLE_STATES,
    ActorRole,
    MissionEvent,
    MissionStatus,
    MissionType,
)

S = MissionStatus
E = MissionEvent
R = ActorRole

Payload = Mapping[str, Any]


@dataclass(frozen=True)
class Rule:
    sources: frozenset[MissionStatus]
    roles: frozenset[ActorRole]
    # Either a fixed target or a function of (status, payload)
    target: MissionStatus | Callable[[MissionStatus, Payload], MissionStatus]
    check: Optional[Callable[[Payload], None]] = None


# ----------------------------------------------------------------------
# Payload checks
# ----------------------------------------------------------------------
def _require_reason(payload: Payload) -> None:
    reason = (payload.get("reason") or "").strip()
    if not reason:
        raise MissionValidationError("A non-empty reason is required")
    if len(reason) > settings.REJECTION_REASON_MAX_LENGTH:
        raise MissionValidationError(
            f"Reason must be at most {settings.REJECTION_REASON_MAX_LENGTH} characters"
        )


def _require_crew(payload: Payload) -> None:
    if not payload.get("crew_id"):
        raise MissionValidationError("Mission has no crew member to assign")


def requires_extension(actual_end_date: date, contract_end_date: date) -> bool:
    """True when the crew reports an end date other than the contracted one."""
    return actual_end_date != contract_end_date


def _check_completion(payload: Payload) -> None:
    actual = payload.get("actual_end_date")
    if actual is None:
        raise MissionValidationError("actual_end_date is required to complete a mission")
    contract_end = payload.get("contract_end_date")
    if contract_end is not None and requires_extension(actual, contract_end):
        if not (payload.get("extension_reason") or "").strip():
            raise MissionValidationError(
                "An extension reason is required when the actual end date differs from the contract"
            )


def _check_validation(payload: Payload) -> None:
    if payload.get("rib_confirmed") is not True:
        raise MissionValidationError("Bank details (RIB) must be confirmed to validate a mission")


def _check_invoice(payload: Payload) -> None:
    if payload.get("mission_type") != MissionType.SERVICE:
        raise MissionValidationError("Only service missions carry a service invoice")
    if not payload.get("validation_submitted"):
        raise MissionValidationError("Crew validation must be submitted before the invoice closes it")
    if payload.get("invoice_total") is None:
        raise MissionValidationError("Service invoice total is required")


def _check_date_request(payload: Payload) -> None:
    _require_reason(payload)
    start, end = payload.get("new_start_date"), payload.get("new_end_date")
    if start is None or end is None:
        raise MissionValidationError("new_start_date and new_end_date are required")
    if end < start:
        raise MissionValidationError("new_end_date must be on/after new_start_date")


def _previous_status(payload: Payload) -> MissionStatus:
    prev = payload.get("previous_status")
    try:
        prev = MissionStatus(prev)
    except ValueError:
        prev = None
    if prev not in EXECUTABLE_STATES:
        raise MissionValidationError("Date modification has no valid prior status to return to")
    return prev


def _check_date_approval(payload: Payload) -> None:
    _previous_status(payload)


def _check_date_rejection(payload: Payload) -> None:
    _require_reason(payload)
    _previous_status(payload)


# ----------------------------------------------------------------------
# Computed targets
# ----------------------------------------------------------------------
def _validation_target(status: MissionStatus, payload: Payload) -> MissionStatus:
    if payload.get("mission_type") == MissionType.SERVICE and payload.get("invoice_total") is None:
        return S.PENDING_VALIDATION
    return S.VALIDATED


def _return_to_prior(status: MissionStatus, payload: Payload) -> MissionStatus:
    return _previous_status(payload)


def _roles(*roles: ActorRole) -> frozenset[ActorRole]:
    return frozenset(roles)


def _states(*states: MissionStatus) -> frozenset[MissionStatus]:
    return frozenset(states)


RULES: dict[MissionEvent, Rule] = {
    E.FINANCE_APPROVE: Rule(_states(S.PENDING_FINANCE_REVIEW), _roles(R.FINANCE, R.ADMIN), S.FINANCE_APPROVED),
    E.FINANCE_REJECT: Rule(
        _states(S.PENDING_FINANCE_REVIEW, S.FINANCE_APPROVED), _roles(R.FINANCE, R.ADMIN), S.REJECTED, _require_reason
    ),
    E.REQUEST_OWNER_APPROVAL: Rule(
        _states(S.FINANCE_APPROVED), _roles(R.FINANCE, R.ADMIN), S.WAITING_OWNER_APPROVAL
    ),
    E.OWNER_APPROVE: Rule(_states(S.WAITING_OWNER_APPROVAL), _roles(R.OWNER, R.ADMIN), S.PENDING_CLIENT_APPROVAL),
    E.OWNER_REJECT: Rule(
        _states(S.WAITING_OWNER_APPROVAL), _roles(R.OWNER, R.ADMIN), S.OWNER_REJECTED, _require_reason
    ),
    E.CLIENT_APPROVE: Rule(_states(S.PENDING_CLIENT_APPROVAL), _roles(R.ADMIN), S.APPROVED),
    E.CLIENT_REJECT: Rule(_states(S.PENDING_CLIENT_APPROVAL), _roles(R.ADMIN), S.CLIENT_REJECTED, _require_reason),
    E.APPROVE: Rule(_states(S.PENDING_APPROVAL), _roles(R.ADMIN), S.APPROVED),
    E.REJECT: Rule(_states(S.PENDING_APPROVAL), _roles(R.ADMIN), S.REJECTED, _require_reason),
    E.ASSIGN_TO_CREW: Rule(_states(S.APPROVED), _roles(R.ADMIN, R.SYSTEM), S.PENDING_EXECUTION, _require_crew),
    E.START_EXECUTION: Rule(_states(S.PENDING_EXECUTION), _roles(R.CREW, R.ADMIN), S.IN_PROGRESS),
    E.COMPLETE_EXECUTION: Rule(_states(S.IN_PROGRESS), _roles(R.CREW, R.ADMIN), S.MISSION_OVER, _check_completion),
    E.REQUEST_VALIDATION: Rule(_states(S.MISSION_OVER), _roles(R.SYSTEM, R.ADMIN), S.PENDING_VALIDATION),
    E.SUBMIT_VALIDATION: Rule(
        _states(S.MISSION_OVER, S.PENDING_VALIDATION), _roles(R.CREW, R.ADMIN), _validation_target, _check_validation
    ),
    E.ATTACH_INVOICE: Rule(_states(S.PENDING_VALIDATION), _roles(R.CREW, R.ADMIN), S.VALIDATED, _check_invoice),
    E.REQUEST_DATE_MODIFICATION: Rule(
        EXECUTABLE_STATES, _roles(R.CREW, R.ADMIN), S.PENDING_DATE_MODIFICATION, _check_date_request
    ),
    E.APPROVE_DATE_MODIFICATION: Rule(
        _states(S.PENDING_DATE_MODIFICATION), _roles(R.ADMIN), _return_to_prior, _check_date_approval
    ),
    E.REJECT_DATE_MODIFICATION: Rule(
        _states(S.PENDING_DATE_MODIFICATION), _roles(R.ADMIN), _return_to_prior, _check_date_rejection
    ),
    E.CANCEL: Rule(CANCELLABLE_STATES, _roles(R.ADMIN), S.CANCELLED, _require_reason),
    E.CLOSE: Rule(_states(S.VALIDATED), _roles(R.FINANCE, R.ADMIN), S.COMPLETED),
}


def transition(
    status: MissionStatus | str,
    event: MissionEvent | str,
    role: ActorRole | str,
    payload: Payload | None = None,
) -> MissionStatus:
    """Return the status reached by applying ``event`` to ``status``."""
    status = MissionStatus(status)
    event = MissionEvent(event)
    role = ActorRole(role)
    payload = payload or {}

    rule = RULES[event]
    if status not in rule.sources:
        raise TransitionError(status, event)
    if rule.check is not None:
        rule.check(payload)
    if role not in rule.roles:
        raise PermissionDenied(f"Role '{role.value}' may not apply '{event.value}'")

    if callable(rule.target):
        return rule.target(status, payload)
    return rule.target


def allowed_events(status: MissionStatus | str, role: ActorRole | str | None = None) -> list[MissionEvent]:
    """Events whose source set contains ``status`` (optionally filtered by role)."""
    status = MissionStatus(status)
    out = []
    for event, rule in RULES.items():
        if status not in rule.sources:
            continue
        if role is not None and ActorRole(role) not in rule.roles:
            continue
        out.append(event)
    return out
