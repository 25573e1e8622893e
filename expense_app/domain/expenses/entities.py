# ============================================================
# Business/domain entities
# ============================================================
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from expense_app.domain.rows import coerce_enum


class ExpenseStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REIMBURSED = "reimbursed"


class ExpenseCategory(str, Enum):
    FUEL = "Fuel"
    MEALS = "Meals & Entertainment"
    LODGING = "Lodging"
    AIRFARE = "Airfare"
    GROUND_TRANSPORTATION = "Ground Transportation"
    OFFICE_SUPPLIES = "Office Supplies"
    SOFTWARE = "Software/Subscriptions"
    MILEAGE = "Mileage"
    MISCELLANEOUS = "Miscellaneous"


@dataclass(frozen=True)
class Expense:
    id: str
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    report_id: Optional[str] = None
    is_reported: bool = False
    receipt_id: Optional[str] = None
    merchant: Optional[str] = None
    amount: float = 0.0
    currency: str = "USD"
    category: Optional[str] = None
    expense_date: Optional[str] = None
    notes: Optional[str] = None
    status: ExpenseStatus = ExpenseStatus.DRAFT
    is_reimbursable: bool = True
    submitted_at: Optional[str] = None
    reimbursed_at: Optional[str] = None
    reimbursed_by: Optional[str] = None
    policy_violations: list[dict[str, Any]] = field(default_factory=list)
    is_split: bool = False
    original_currency: Optional[str] = None
    original_amount: Optional[float] = None
    exchange_rate: Optional[float] = None
    duplicate_of: Optional[str] = None
    duplicate_status: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    user: Optional[dict[str, Any]] = None
    receipt: Optional[dict[str, Any]] = None
    expense_receipts: Optional[list[dict[str, Any]]] = None

    def __post_init__(self) -> None:
        coerce_enum(self, "status", ExpenseStatus)


@dataclass(frozen=True)
class ExpenseItem:
    """One line of a split expense."""

    id: str
    expense_id: Optional[str] = None
    organization_id: Optional[str] = None
    receipt_id: Optional[str] = None
    description: Optional[str] = None
    amount: float = 0.0
    category: Optional[str] = None
    line_number: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    receipt: Optional[dict[str, Any]] = None


# ============================================================
# Input models
# ============================================================


class CreateExpense(BaseModel):
    merchant: str = Field(min_length=1)
    amount: float = Field(gt=0)
    category: str
    expense_date: str
    notes: Optional[str] = None
    receipt_id: Optional[str] = None
    currency: Optional[str] = None
    original_currency: Optional[str] = None
    original_amount: Optional[float] = None


class UpdateExpense(BaseModel):
    merchant: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    category: Optional[str] = None
    expense_date: Optional[str] = None
    notes: Optional[str] = None
    receipt_id: Optional[str] = None
    status: Optional[ExpenseStatus] = None
    submitted_at: Optional[str] = None


class ExpenseFilters(BaseModel):
    status: Optional[Union[ExpenseStatus, list[ExpenseStatus]]] = None
    user_id: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    category: Optional[str] = None
    merchant: Optional[str] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None


class ExpenseSort(BaseModel):
    field: Literal["expense_date", "amount", "created_at", "merchant"] = "created_at"
    direction: Literal["asc", "desc"] = "desc"


class CreateExpenseItem(BaseModel):
    description: str = Field(min_length=1)
    amount: float
    category: str
    receipt_id: Optional[str] = None


class UpdateExpenseItem(BaseModel):
    description: Optional[str] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    receipt_id: Optional[str] = None
