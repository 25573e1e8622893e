from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from expense_app.domain.rows import coerce_enum, from_row


class ReportStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


@dataclass(frozen=True)
class ReportExpense:
    """Junction row placing an expense inside a report."""

    id: str
    report_id: Optional[str] = None
    expense_id: Optional[str] = None
    display_order: int = 0
    added_at: Optional[str] = None
    added_by: Optional[str] = None
    expense: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ExpenseReport:
    id: str
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: ReportStatus = ReportStatus.DRAFT
    total_amount: float = 0.0
    currency: str = "USD"
    expense_count: Optional[int] = None
    auto_created: bool = False
    auto_report_period: Optional[str] = None
    submitted_at: Optional[str] = None
    approved_at: Optional[str] = None
    rejected_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    paid_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    report_expenses: list[ReportExpense] = field(default_factory=list)

    def __post_init__(self) -> None:
        coerce_enum(self, "status", ReportStatus)
        junction = [
            from_row(ReportExpense, row) if isinstance(row, dict) else row
            for row in self.report_expenses or []
        ]
        object.__setattr__(self, "report_expenses", junction)
        if self.expense_count is None:
            object.__setattr__(self, "expense_count", len(junction))


@dataclass(frozen=True)
class ReportStats:
    total_amount: float = 0.0
    expense_count: int = 0
    category_breakdown: dict[str, float] = field(default_factory=dict)
    date_range: Optional[dict[str, Any]] = None


class CreateReport(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    expense_ids: list[str] = Field(default_factory=list)


class UpdateReport(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: Optional[ReportStatus] = None
    rejection_reason: Optional[str] = None


class ReportFilters(BaseModel):
    status: Optional[ReportStatus] = None
    user_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    search: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    page: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=1)
