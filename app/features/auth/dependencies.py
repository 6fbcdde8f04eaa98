from fastapi import Depends, Header
from typing import Optional
from pydantic import ValidationError as PydanticValidationError

from app.features.auth.models import Actor
from app.core.logging import logger
from app.shared.exceptions import CredentialsException


async def get_optional_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_name: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Optional[Actor]:
    """
    Dependency reading the acting user forwarded by the auth gateway.

    Returns None when no actor headers are present.
    """
    if not x_actor_id:
        return None

    try:
        return Actor(
            id=x_actor_id,
            name=x_actor_name or x_actor_id,
            role=x_actor_role or "doctor",
        )
    except PydanticValidationError:
        logger.warning(f"Rejected actor headers for {x_actor_id!r} with role {x_actor_role!r}")
        raise CredentialsException("Invalid actor identity")


async def get_current_actor(
    actor: Optional[Actor] = Depends(get_optional_actor)
) -> Actor:
    """
    Dependency requiring an acting user.

    Raises:
        CredentialsException: If no actor identity was supplied
    """
    if actor is None:
        raise CredentialsException()
    return actor
