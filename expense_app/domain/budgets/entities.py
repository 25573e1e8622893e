from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from pydantic import BaseModel, Field

from expense_app.domain.rows import from_rows

BudgetType = Literal["organization", "department", "category", "user"]
BudgetPeriod = Literal["monthly", "quarterly", "yearly", "custom"]
BudgetStatus = Literal["under", "warning", "exceeded"]

DEFAULT_ALERT_THRESHOLD_PERCENT = 80


@dataclass(frozen=True)
class BudgetTracking:
    id: str
    budget_id: Optional[str] = None
    organization_id: Optional[str] = None
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    spent_amount: float = 0.0
    pending_amount: float = 0.0
    alert_sent_at: Optional[str] = None
    exceeded_at: Optional[str] = None
    last_calculated_at: Optional[str] = None


@dataclass(frozen=True)
class Budget:
    id: str
    organization_id: Optional[str] = None
    name: str = ""
    budget_type: str = "organization"
    department: Optional[str] = None
    category: Optional[str] = None
    user_id: Optional[str] = None
    amount: float = 0.0
    period: str = "monthly"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    alert_threshold_percent: int = DEFAULT_ALERT_THRESHOLD_PERCENT
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    budget_tracking: list[BudgetTracking] = field(default_factory=list)

    def __post_init__(self) -> None:
        tracking = self.budget_tracking or []
        if tracking and isinstance(tracking[0], dict):
            tracking = from_rows(BudgetTracking, tracking)
        object.__setattr__(self, "budget_tracking", list(tracking))


@dataclass(frozen=True)
class BudgetUsage:
    """A budget with the tracking record of the current period and its derived status."""

    budget: Budget
    tracking: Optional[BudgetTracking]
    total_used: float
    remaining_amount: float
    percent_used: int
    status: str


@dataclass(frozen=True)
class BudgetCheckResult:
    budget_id: str
    budget_name: str = ""
    budget_amount: float = 0.0
    spent_amount: float = 0.0
    pending_amount: float = 0.0
    remaining_amount: float = 0.0
    percent_used: float = 0.0
    status: str = "under"
    message: str = ""


@dataclass(frozen=True)
class BudgetSummary:
    total_budgets: int = 0
    under_budget: int = 0
    at_warning: int = 0
    exceeded: int = 0


class CreateBudget(BaseModel):
    name: str = Field(min_length=1)
    budget_type: BudgetType
    department: Optional[str] = None
    category: Optional[str] = None
    user_id: Optional[str] = None
    amount: float = Field(gt=0)
    period: BudgetPeriod
    start_date: str
    end_date: Optional[str] = None
    alert_threshold_percent: int = Field(default=DEFAULT_ALERT_THRESHOLD_PERCENT, ge=1, le=100)


class UpdateBudget(BaseModel):
    name: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    alert_threshold_percent: Optional[int] = Field(default=None, ge=1, le=100)
    is_active: Optional[bool] = None
    end_date: Optional[str] = None


class BudgetFilters(BaseModel):
    budget_type: Optional[BudgetType] = None
    status: Optional[BudgetStatus] = None
    department: Optional[str] = None
    category: Optional[str] = None
    user_id: Optional[str] = None
    include_inactive: bool = False


class ExpenseBudgetCheck(BaseModel):
    amount: float
    category: str
    expense_date: str
