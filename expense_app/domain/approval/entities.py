# ============================================================
# Business/domain entities
# ============================================================
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from expense_app.domain.rows import coerce_enum, from_row


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    AWAITING_PAYMENT = "awaiting_payment"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    PAID = "paid"


class ApprovalStepType(str, Enum):
    MANAGER = "manager"
    ROLE = "role"
    SPECIFIC_USER = "specific_user"
    SPECIFIC_MANAGER = "specific_manager"
    MULTIPLE_USERS = "multiple_users"
    PAYMENT = "payment"
    DEPARTMENT_OWNER = "department_owner"


ApproverRoleLiteral = Literal["manager", "finance", "admin"]


@dataclass(frozen=True)
class ApprovalRecord:
    """One expense's or report's progress through an approval workflow."""

    id: str
    organization_id: Optional[str] = None
    expense_id: Optional[str] = None
    report_id: Optional[str] = None
    workflow_id: Optional[str] = None
    current_step: Optional[int] = None
    total_steps: Optional[int] = None
    current_approver_id: Optional[str] = None
    status: Optional[ApprovalStatus] = None
    submitted_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self) -> None:
        coerce_enum(self, "status", ApprovalStatus)


@dataclass(frozen=True)
class Submitter:
    full_name: Optional[str] = None
    email: Optional[str] = None


def _embed_submitter(instance: Any) -> None:
    user = getattr(instance, "user")
    if isinstance(user, dict):
        object.__setattr__(instance, "user", from_row(Submitter, user))


@dataclass(frozen=True)
class WorkflowSummary:
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    priority: Optional[int] = None


@dataclass(frozen=True)
class ExpenseSummary:
    id: str
    merchant: Optional[str] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    currency: Optional[str] = None
    expense_date: Optional[str] = None
    status: Optional[str] = None
    user_id: Optional[str] = None
    user: Optional[Submitter] = None

    def __post_init__(self) -> None:
        _embed_submitter(self)


@dataclass(frozen=True)
class ReportSummary:
    id: str
    name: Optional[str] = None
    total_amount: Optional[float] = None
    expense_count: Optional[int] = None
    status: Optional[str] = None
    user_id: Optional[str] = None
    user: Optional[Submitter] = None

    def __post_init__(self) -> None:
        _embed_submitter(self)


@dataclass(frozen=True)
class ApprovalWithDetails(ApprovalRecord):
    """An approval record joined with its workflow, expense and report.

    Joined objects are shared between records that reference the same id.
    Treat them as read-only.
    """

    workflow: Optional[WorkflowSummary] = None
    expense: Optional[ExpenseSummary] = None
    report: Optional[ReportSummary] = None


@dataclass(frozen=True)
class ApprovalWorkflow:
    id: str
    organization_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    is_default: bool = False
    conditions: dict[str, Any] = field(default_factory=dict)
    priority: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None


@dataclass(frozen=True)
class ApprovalStep:
    id: str
    workflow_id: Optional[str] = None
    step_order: int = 1
    step_type: ApprovalStepType = ApprovalStepType.MANAGER
    approver_role: Optional[str] = None
    approver_user_id: Optional[str] = None
    approver_user_ids: Optional[list[str]] = None
    is_payment_step: bool = False
    require_all: bool = False

    def __post_init__(self) -> None:
        coerce_enum(self, "step_type", ApprovalStepType)


@dataclass(frozen=True)
class ApprovalAction:
    id: str
    expense_approval_id: Optional[str] = None
    step_number: Optional[int] = None
    action: Optional[str] = None
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    comment: Optional[str] = None
    rejection_reason: Optional[str] = None
    delegated_to: Optional[str] = None
    action_at: Optional[str] = None


@dataclass(frozen=True)
class ApprovalStats:
    pending_count: int = 0
    awaiting_payment_count: int = 0
    approved_count: int = 0
    paid_count: int = 0
    rejected_count: int = 0
    avg_approval_time_hours: float = 0.0


@dataclass(frozen=True)
class PaymentQueueItem:
    approval_id: str
    expense_id: Optional[str] = None
    report_id: Optional[str] = None
    submitter_id: Optional[str] = None
    submitter_name: Optional[str] = None
    amount: float = 0.0
    description: Optional[str] = None
    current_approver_id: Optional[str] = None
    submitted_at: Optional[str] = None
    approved_at: Optional[str] = None


@dataclass(frozen=True)
class StepTypeMetadata:
    value: ApprovalStepType
    label: str
    description: str
    icon: str
    requires_role: bool = False
    requires_user: bool = False
    requires_multiple_users: bool = False
    is_payment_step: bool = False
    allowed_roles: Optional[tuple[str, ...]] = None


# ============================================================
# Input models
# ============================================================


class ApprovalConditions(BaseModel):
    amount_min: Optional[float] = Field(default=None, ge=0)
    amount_max: Optional[float] = Field(default=None, ge=0)
    categories: Optional[list[str]] = None
    departments: Optional[list[str]] = None
    project_codes: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    submitter_ids: Optional[list[str]] = None


class CreateStep(BaseModel):
    step_order: int = Field(ge=1)
    step_type: ApprovalStepType
    approver_role: Optional[ApproverRoleLiteral] = None
    approver_user_id: Optional[str] = None
    approver_user_ids: Optional[list[str]] = None
    is_payment_step: bool = False

    @model_validator(mode="after")
    def _check_approver(self) -> "CreateStep":
        if self.step_type == ApprovalStepType.ROLE and not self.approver_role:
            raise ValueError("Role steps need an approver_role")
        if self.step_type in (ApprovalStepType.SPECIFIC_USER, ApprovalStepType.SPECIFIC_MANAGER) \
                and not self.approver_user_id:
            raise ValueError(f"{self.step_type.value} steps need an approver_user_id")
        if self.step_type == ApprovalStepType.MULTIPLE_USERS and not self.approver_user_ids:
            raise ValueError("multiple_users steps need approver_user_ids")
        return self


class CreateWorkflow(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    conditions: ApprovalConditions = Field(default_factory=ApprovalConditions)
    priority: int = 0
    steps: list[CreateStep] = Field(min_length=1)


class UpdateWorkflow(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    conditions: Optional[ApprovalConditions] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None


class ApproveExpense(BaseModel):
    comment: Optional[str] = None


class RejectExpense(BaseModel):
    rejection_reason: str = Field(min_length=1)
    comment: Optional[str] = None


class ApprovalFilters(BaseModel):
    """Optional narrowing for approval queues."""

    status: Optional[ApprovalStatus] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
