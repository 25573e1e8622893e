from fastapi import APIRouter

from expense_app.api.schemas import (
    PerDiemRequest,
    PerDiemResponse,
    SplitTotalRequest,
    SplitTotalResponse,
)
from expense_app.domain.expenses import validate_split_total
from expense_app.domain.per_diem import adjusted_mie

router = APIRouter(prefix="/calculations", tags=["Calculations"])


@router.post("/split-total", response_model=SplitTotalResponse)
async def check_split_total(body: SplitTotalRequest):
    """Check that proposed line items can replace an expense."""
    message = validate_split_total(body.expense_total, body.items)
    return SplitTotalResponse(
        valid=message is None,
        items_total=round(sum(item.amount for item in body.items), 2),
        message=message,
    )


@router.post("/per-diem", response_model=PerDiemResponse)
async def calculate_per_diem(body: PerDiemRequest):
    daily = [
        round(
            adjusted_mie(
                body.mie_rate,
                breakfast=day.breakfast,
                lunch=day.lunch,
                dinner=day.dinner,
                is_first_or_last_day=day.is_first_or_last_day,
            ),
            2,
        )
        for day in body.days
    ]
    return PerDiemResponse(daily=daily, total=round(sum(daily), 2))
