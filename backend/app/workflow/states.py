# backend/app/workflow/states.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MissionType(str, Enum):
    EXTRA_DAY = "extra_day"
    FREELANCE = "freelance"
    SERVICE = "service"


class Workflow(str, Enum):
    GATED = "gated"    # finance -> owner -> client
    LEGACY = "legacy"  # single pending_approval gate


class MissionStatus(str, Enum):
    PENDING_FINANCE_REVIEW = "pending_finance_review"
    FINANCE_APPROVED = "finance_approved"
    PENDING_APPROVAL = "pending_approval"
    WAITING_OWNER_APPROVAL = "waiting_owner_approval"
    OWNER_REJECTED = "owner_rejected"
    PENDING_CLIENT_APPROVAL = "pending_client_approval"
    APPROVED = "approved"
    CLIENT_REJECTED = "client_rejected"
    REJECTED = "rejected"
    PENDING_EXECUTION = "pending_execution"
    IN_PROGRESS = "in_progress"
    MISSION_OVER = "mission_over"
    PENDING_VALIDATION = "pending_validation"
    VALIDATED = "validated"
    PENDING_DATE_MODIFICATION = "pending_date_modification"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MissionEvent(str, Enum):
    FINANCE_APPROVE = "finance_approve"
    FINANCE_REJECT = "finance_reject"
    REQUEST_OWNER_APPROVAL = "request_owner_approval"
    OWNER_APPROVE = "owner_approve"
    OWNER_REJECT = "owner_reject"
    CLIENT_APPROVE = "client_approve"
    CLIENT_REJECT = "client_reject"
    APPROVE = "approve"
    REJECT = "reject"
    ASSIGN_TO_CREW = "assign_to_crew"
    START_EXECUTION = "start_execution"
    COMPLETE_EXECUTION = "complete_execution"
    REQUEST_VALIDATION = "request_validation"
    SUBMIT_VALIDATION = "submit_validation"
    ATTACH_INVOICE = "attach_invoice"
    REQUEST_DATE_MODIFICATION = "request_date_modification"
    APPROVE_DATE_MODIFICATION = "approve_date_modification"
    REJECT_DATE_MODIFICATION = "reject_date_modification"
    CANCEL = "cancel"
    CLOSE = "close"


class ActorRole(str, Enum):
    ADMIN = "admin"
    FINANCE = "finance"
    OWNER = "owner"
    CREW = "crew"
    SYSTEM = "system"


S = MissionStatus

INITIAL_STATUS: dict[Workflow, MissionStatus] = {
    Workflow.GATED: S.PENDING_FINANCE_REVIEW,
    Workflow.LEGACY: S.PENDING_APPROVAL,
}

TERMINAL_STATES: frozenset[MissionStatus] = frozenset({
    S.VALIDATED,
    S.REJECTED,
    S.CANCELLED,
    S.CLIENT_REJECTED,
    S.OWNER_REJECTED,
    S.COMPLETED,
})

# States a date modification may be requested from (and returned to)
EXECUTABLE_STATES: frozenset[MissionStatus] = frozenset({
    S.PENDING_EXECUTION,
    S.IN_PROGRESS,
    S.MISSION_OVER,
})

# Cancellation is only possible before the crew starts flying
CANCELLABLE_STATES: frozenset[MissionStatus] = frozenset({
    S.PENDING_FINANCE_REVIEW,
    S.FINANCE_APPROVED,
    S.PENDING_APPROVAL,
    S.WAITING_OWNER_APPROVAL,
    S.PENDING_CLIENT_APPROVAL,
    S.APPROVED,
    S.PENDING_EXECUTION,
})

# Gate states that belong to exactly one workflow variant
GATED_ONLY_STATES: frozenset[MissionStatus] = frozenset({
    S.PENDING_FINANCE_REVIEW,
    S.FINANCE_APPROVED,
    S.WAITING_OWNER_APPROVAL,
    S.OWNER_REJECTED,
    S.PENDING_CLIENT_APPROVAL,
    S.CLIENT_REJECTED,
})
LEGACY_ONLY_STATES: frozenset[MissionStatus] = frozenset({S.PENDING_APPROVAL})


def is_terminal(status: MissionStatus) -> bool:
    return MissionStatus(status) in TERMINAL_STATES


def status_label(status: MissionStatus) -> str:
    """Human readable label, e.g. ``pending_client_approval`` -> ``Pending Client Approval``."""
    if status == S.PENDING_DATE_MODIFICATION:
        return "Date Modification Pending"
    return MissionStatus(status).value.replace("_", " ").title()


@dataclass(frozen=True)
class Actor:
    """Who is acting; identity comes from the auth collaborator."""
    id: str
    role: ActorRole


SYSTEM_ACTOR = Actor(id="system", role=ActorRole.SYSTEM)
