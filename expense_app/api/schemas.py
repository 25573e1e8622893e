from typing import List, Optional

from pydantic import BaseModel, Field

from expense_app.domain.expenses.entities import CreateExpenseItem


class SplitTotalRequest(BaseModel):
    """
    Proposed line items for splitting one expense.
    """

    expense_total: float = Field(
        ...,
        description="Amount of the expense being split"
    )
    items: List[CreateExpenseItem] = Field(
        default_factory=list,
        description="Line items that will replace the expense"
    )


class SplitTotalResponse(BaseModel):
    valid: bool
    items_total: float
    message: Optional[str] = None


class PerDiemDay(BaseModel):
    breakfast: bool = False
    lunch: bool = False
    dinner: bool = False
    is_first_or_last_day: bool = False


class PerDiemRequest(BaseModel):
    mie_rate: float = Field(
        ...,
        ge=0,
        description="Full daily meals and incidentals rate for the location"
    )
    days: List[PerDiemDay] = Field(
        ...,
        min_length=1,
        description="One entry per travel day, in order"
    )


class PerDiemResponse(BaseModel):
    daily: List[float]
    total: float


class RejectRequest(BaseModel):
    rejection_reason: str = Field(..., min_length=1)
    comment: Optional[str] = None


class ApproveRequest(BaseModel):
    comment: Optional[str] = None
