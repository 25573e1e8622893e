from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from expense_app.domain.organizations.entities import UserRole
from expense_app.domain.rows import coerce_enum

InvitationStatus = Literal["pending", "accepted", "expired", "revoked"]


@dataclass(frozen=True)
class Invitation:
    id: str
    organization_id: Optional[str] = None
    email: str = ""
    role: UserRole = UserRole.EMPLOYEE
    manager_id: Optional[str] = None
    department: Optional[str] = None
    token: Optional[str] = None
    expires_at: Optional[str] = None
    status: str = "pending"
    invited_by: Optional[str] = None
    accepted_by: Optional[str] = None
    accepted_at: Optional[str] = None
    created_at: Optional[str] = None
    # Only filled by the token lookup, which joins these in flat
    organization_name: Optional[str] = None
    inviter_name: Optional[str] = None

    def __post_init__(self) -> None:
        coerce_enum(self, "role", UserRole)


class CreateInvitation(BaseModel):
    email: EmailStr
    role: UserRole = UserRole.EMPLOYEE
    manager_id: Optional[str] = None
    department: Optional[str] = None


class BulkInvitation(BaseModel):
    invitations: list[CreateInvitation] = Field(min_length=1)
