from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    CLINICIAN = "clinician"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"


class User(BaseModel):
    """Acting user for a single call. The engine does not keep sessions."""

    id: str
    name: str
    role: UserRole = UserRole.CLINICIAN
