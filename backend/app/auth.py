"""Actor identification for the GrameenLink backend.

Authentication is mocked: the caller states who they are in the
``X-Actor-Id`` and ``X-Actor-Role`` headers and the API believes them.
Ownership and role checks still run on every operation.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from grameenlink.marketplace.applications import Actor, ActorRole

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


async def get_current_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Resolve the calling actor from request headers."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {ACTOR_ID_HEADER} header",
        )
    if not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {ACTOR_ROLE_HEADER} header",
        )
    role = x_actor_role.strip().lower()
    if role not in {r.value for r in ActorRole}:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid actor role: {x_actor_role!r}. Must be 'worker' or 'employer'",
        )
    return Actor(id=x_actor_id.strip(), role=role)


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
