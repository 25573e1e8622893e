from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from expense_app.domain.rows import coerce_enum


class UserRole(str, Enum):
    EMPLOYEE = "employee"
    FINANCE = "finance"
    MANAGER = "manager"
    ADMIN = "admin"


ROLE_HIERARCHY: tuple[UserRole, ...] = (
    UserRole.EMPLOYEE,
    UserRole.FINANCE,
    UserRole.MANAGER,
    UserRole.ADMIN,
)


@dataclass(frozen=True)
class Organization:
    id: str
    name: Optional[str] = None
    domain: Optional[str] = None
    settings: dict[str, Any] = field(default_factory=dict)
    default_currency: Optional[str] = None
    supported_currencies: Optional[list[str]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class OrganizationMember:
    id: str
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    role: UserRole = UserRole.EMPLOYEE
    manager_id: Optional[str] = None
    department: Optional[str] = None
    is_active: bool = True
    invited_by: Optional[str] = None
    joined_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    user: Optional[dict[str, Any]] = None

    def __post_init__(self) -> None:
        coerce_enum(self, "role", UserRole)


@dataclass(frozen=True)
class OrganizationWithStats:
    organization: Organization
    member_count: int = 0
    active_member_count: int = 0
    pending_invitations: int = 0


@dataclass(frozen=True)
class UserOrganizationContext:
    user_id: str
    current_organization: Optional[Organization]
    current_membership: Optional[OrganizationMember]
    organizations: list[Organization] = field(default_factory=list)
    memberships: list[OrganizationMember] = field(default_factory=list)


class CreateOrganization(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    domain: Optional[str] = None
    settings: Optional[dict[str, Any]] = None


class UpdateOrganization(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    domain: Optional[str] = None
    settings: Optional[dict[str, Any]] = None


class UpdateOrganizationMember(BaseModel):
    role: Optional[UserRole] = None
    manager_id: Optional[str] = None
    department: Optional[str] = None
