from typing import Optional

from fastapi import APIRouter, Depends

from expense_app.api.core.session import RequestSession, get_session
from expense_app.api.schemas import ApproveRequest, RejectRequest
from expense_app.domain.approval import ApprovalService
from expense_app.domain.approval.entities import (
    ApprovalFilters,
    ApproveExpense,
    RejectExpense,
)

router = APIRouter(prefix="/approvals", tags=["Approvals"])


def get_approval_service(session: RequestSession = Depends(get_session)) -> ApprovalService:
    return ApprovalService(session.gateway, session.context, session.container.notifier)


@router.get(
    "/pending",
    summary="List approvals waiting on the caller",
    description="Pending approvals where the caller is the current approver, joined with workflow, expense and report.",
)
async def get_pending(
    q: ApprovalFilters = Depends(),
    service: ApprovalService = Depends(get_approval_service),
):
    return await service.get_pending_approvals(q)


@router.get("/submissions", summary="List approvals for the caller's own submissions")
async def get_submissions(
    q: ApprovalFilters = Depends(),
    service: ApprovalService = Depends(get_approval_service),
):
    return await service.get_my_submissions(q)


@router.get("/awaiting-payment", summary="List approvals waiting for reimbursement")
async def get_awaiting_payment(
    q: ApprovalFilters = Depends(),
    service: ApprovalService = Depends(get_approval_service),
):
    return await service.get_awaiting_payment(q)


@router.get("/stats", summary="Approval counters for the caller")
async def get_stats(service: ApprovalService = Depends(get_approval_service)):
    return await service.get_approval_stats()


@router.post("/{approval_id}/approve")
async def approve(
    approval_id: str,
    body: Optional[ApproveRequest] = None,
    service: ApprovalService = Depends(get_approval_service),
):
    """Approve the current step. The record may come back minimal if it left the caller's view."""
    comment = body.comment if body else None
    return await service.approve(approval_id, ApproveExpense(comment=comment))


@router.post("/{approval_id}/reject")
async def reject(
    approval_id: str,
    body: RejectRequest,
    service: ApprovalService = Depends(get_approval_service),
):
    return await service.reject(
        approval_id,
        RejectExpense(rejection_reason=body.rejection_reason, comment=body.comment),
    )
