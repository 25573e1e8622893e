from fastapi import APIRouter, Depends

from expense_app.api.core.session import RequestSession, get_session
from expense_app.domain.expenses import ExpenseService

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.post("/{expense_id}/submit", summary="Submit a draft expense for approval")
async def submit_expense(expense_id: str, session: RequestSession = Depends(get_session)):
    service = ExpenseService(session.gateway, session.context, session.container.notifier)
    return await service.submit_expense(expense_id)
