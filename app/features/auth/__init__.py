# Actor Identity Feature

from app.features.auth.models import Actor, UserRole
from app.features.auth.dependencies import get_current_actor, get_optional_actor

__all__ = ["Actor", "UserRole", "get_current_actor", "get_optional_actor"]
