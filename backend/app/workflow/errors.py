# backend/app/workflow/errors.py
"""Error taxonomy shared by the workflow core, the services and the HTTP layer."""
from __future__ import annotations


class WorkflowError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class TransitionError(WorkflowError):
    """An event was applied to a status outside its allowed source set."""

    def __init__(self, status, event, detail: str | None = None):
        self.status = getattr(status, "value", status)
        self.event = getattr(event, "value", event)
        super().__init__(
            detail or f"Cannot apply '{self.event}' to a mission in status '{self.status}'"
        )


class MissionValidationError(WorkflowError):
    """Missing or inconsistent input; nothing was persisted."""


class ConflictError(MissionValidationError):
    status_code = 409


class PermissionDenied(WorkflowError):
    status_code = 403


class MissionNotFound(WorkflowError):
    status_code = 404

    def __init__(self, mission_id: str):
        self.mission_id = mission_id
        super().__init__("Mission not found")


class ConcurrentModificationError(WorkflowError):
    """The mission changed between read and write (optimistic check failed)."""

    status_code = 409

    def __init__(self, mission_id: str, expected_status):
        self.mission_id = mission_id
        self.expected_status = getattr(expected_status, "value", expected_status)
        super().__init__(
            f"Mission {mission_id} was modified concurrently (expected status '{self.expected_status}')"
        )


class ConnectivityError(WorkflowError):
    """Every hop of the store fallback chain failed."""

    status_code = 503
