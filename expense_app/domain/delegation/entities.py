from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from expense_app.domain.rows import coerce_enum


class DelegationScope(str, Enum):
    ALL = "all"
    CREATE = "create"
    SUBMIT = "submit"
    VIEW = "view"


@dataclass(frozen=True)
class ExpenseDelegation:
    id: str
    organization_id: Optional[str] = None
    delegator_id: Optional[str] = None
    delegate_id: Optional[str] = None
    scope: DelegationScope = DelegationScope.ALL
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    is_active: bool = True
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    delegator: Optional[dict[str, Any]] = None
    delegate: Optional[dict[str, Any]] = None

    def __post_init__(self) -> None:
        coerce_enum(self, "scope", DelegationScope)


@dataclass(frozen=True)
class DelegationWithUser:
    """A user the signed-in user may act for."""

    delegator_id: str
    delegator_name: Optional[str] = None
    delegator_email: Optional[str] = None
    scope: DelegationScope = DelegationScope.ALL
    valid_until: Optional[str] = None

    def __post_init__(self) -> None:
        coerce_enum(self, "scope", DelegationScope)


@dataclass(frozen=True)
class DelegateWithUser:
    """A user allowed to act for the signed-in user."""

    delegate_id: str
    delegate_name: Optional[str] = None
    delegate_email: Optional[str] = None
    scope: DelegationScope = DelegationScope.ALL
    valid_until: Optional[str] = None

    def __post_init__(self) -> None:
        coerce_enum(self, "scope", DelegationScope)


@dataclass(frozen=True)
class DelegationAuditEntry:
    id: str
    delegation_id: Optional[str] = None
    action: Optional[str] = None
    actor_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None


class CreateDelegation(BaseModel):
    delegator_id: str
    delegate_id: str
    scope: DelegationScope = DelegationScope.ALL
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    notes: Optional[str] = None


class UpdateDelegation(BaseModel):
    scope: Optional[DelegationScope] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


@dataclass(frozen=True)
class DelegationMetadata:
    """Stamped on records created while acting for someone else."""

    submitted_by: str
    submitted_on_behalf_of: str
