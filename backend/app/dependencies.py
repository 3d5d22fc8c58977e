# backend/app/dependencies.py
import logging

from fastapi import Header, HTTPException

from app.workflow.states import Actor, ActorRole

logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


def get_actor(
    x_actor_id: str = Header(..., alias=ACTOR_ID_HEADER),
    x_actor_role: str = Header(..., alias=ACTOR_ROLE_HEADER),
) -> Actor:
    """Caller identity, as forwarded by the auth layer in front of this service."""
    actor_id = x_actor_id.strip()
    if not actor_id:
        raise HTTPException(status_code=401, detail=f"{ACTOR_ID_HEADER} header is required")
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        logger.warning(f"[auth] unknown role '{x_actor_role}' for {actor_id}")
        raise HTTPException(status_code=403, detail=f"Unknown role '{x_actor_role}'")
    if role == ActorRole.SYSTEM:
        # reserved for in-process pollers
        raise HTTPException(status_code=403, detail="The system role cannot be used over HTTP")
    return Actor(id=actor_id, role=role)
