# backend/app/workflow/__init__.py
# Pure domain core: no database, no HTTP.
from .states import SYSTEM_ACTOR, Actor, ActorRole, MissionEvent, MissionStatus, MissionType, Workflow
from .engine import allowed_events, transition
from .errors import (
    ConcurrentModificationError,
    ConflictError,
    ConnectivityError,
    MissionNotFound,
    MissionValidationError,
    PermissionDenied,
    TransitionError,
    WorkflowError,
)

__all__ = [
    "SYSTEM_ACTOR", "Actor", "ActorRole", "MissionEvent", "MissionStatus", "MissionType", "Workflow",
    "allowed_events", "transition",
    "ConcurrentModificationError", "ConflictError", "ConnectivityError", "MissionNotFound",
    "MissionValidationError", "PermissionDenied", "TransitionError", "WorkflowError",
]
