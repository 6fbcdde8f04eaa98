# Actor Identity - Models

from enum import Enum
from pydantic import BaseModel, Field


class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    RECEPTION = "reception"
    CONSULTANT = "consultant"


class Actor(BaseModel):
    """
    The authenticated user performing an operation.

    Supplied by the authentication collaborator and trusted as given. Its id
    and name are stamped onto records as created_by / doctor_id /
    consultant_id.
    """
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: UserRole = UserRole.DOCTOR
