from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

PolicyScopeType = Literal["organization", "department", "role", "user", "category"]


@dataclass(frozen=True)
class ExpensePolicy:
    id: str
    organization_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    scope_type: str = "organization"
    scope_value: Optional[str] = None
    category: Optional[str] = None
    max_amount: Optional[float] = None
    max_daily_total: Optional[float] = None
    max_monthly_total: Optional[float] = None
    max_receipt_age_days: int = 90
    require_receipt: bool = True
    require_description: bool = False
    allow_weekends: bool = True
    auto_approve_under: Optional[float] = None
    require_approval_over: Optional[float] = None
    priority: int = 0
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None


@dataclass(frozen=True)
class PolicyPreset:
    id: str
    name: Optional[str] = None
    preset_type: Optional[str] = None
    config: dict[str, Any] = field(default_factory=dict)
    is_default: bool = False
    description: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class EffectivePolicy:
    """Merged limits that apply to one user and category."""

    max_amount: Optional[float] = None
    max_daily_total: Optional[float] = None
    max_monthly_total: Optional[float] = None
    max_receipt_age_days: int = 90
    require_receipt: bool = True
    require_description: bool = False
    allow_weekends: bool = True
    auto_approve_under: Optional[float] = None
    require_approval_over: Optional[float] = None
    applied_policies: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PolicyStats:
    total: int = 0
    active: int = 0
    by_scope: dict[str, int] = field(default_factory=dict)


class CreatePolicy(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    scope_type: PolicyScopeType = "organization"
    scope_value: Optional[str] = None
    category: Optional[str] = None
    max_amount: Optional[float] = Field(default=None, ge=0)
    max_daily_total: Optional[float] = Field(default=None, ge=0)
    max_monthly_total: Optional[float] = Field(default=None, ge=0)
    max_receipt_age_days: Optional[int] = Field(default=None, ge=0)
    require_receipt: Optional[bool] = None
    require_description: Optional[bool] = None
    allow_weekends: Optional[bool] = None
    auto_approve_under: Optional[float] = Field(default=None, ge=0)
    require_approval_over: Optional[float] = Field(default=None, ge=0)
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class UpdatePolicy(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    scope_type: Optional[PolicyScopeType] = None
    scope_value: Optional[str] = None
    category: Optional[str] = None
    max_amount: Optional[float] = Field(default=None, ge=0)
    max_daily_total: Optional[float] = Field(default=None, ge=0)
    max_monthly_total: Optional[float] = Field(default=None, ge=0)
    max_receipt_age_days: Optional[int] = Field(default=None, ge=0)
    require_receipt: Optional[bool] = None
    require_description: Optional[bool] = None
    allow_weekends: Optional[bool] = None
    auto_approve_under: Optional[float] = Field(default=None, ge=0)
    require_approval_over: Optional[float] = Field(default=None, ge=0)
    priority: Optional[int] = None
    is_active: Optional[bool] = None
