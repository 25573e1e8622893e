"""Approval workflows, queues and actions."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from expense_app.config import get_settings
from expense_app.core.errors import ROW_NOT_VISIBLE_CODE, RowNotVisibleError
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq, gte, lte
from expense_app.observability.tracing import log_event

from . import display
from .aggregation import aggregate_approval_details
from .entities import (
    ApprovalAction,
    ApprovalFilters,
    ApprovalRecord,
    ApprovalStats,
    ApprovalStatus,
    ApprovalStep,
    ApprovalWithDetails,
    ApprovalWorkflow,
    ApproveExpense,
    CreateStep,
    CreateWorkflow,
    PaymentQueueItem,
    RejectExpense,
    UpdateWorkflow,
)

APPROVALS_TABLE = "expense_approvals"
WORKFLOWS_TABLE = "approval_workflows"
STEPS_TABLE = "approval_steps"
ACTIONS_TABLE = "approval_actions"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _date_filters(filters: Optional[ApprovalFilters]) -> list:
    if filters is None:
        return []
    out = []
    if filters.date_from:
        out.append(gte("submitted_at", filters.date_from))
    if filters.date_to:
        out.append(lte("submitted_at", filters.date_to))
    return out


class ApprovalService(DomainService):
    """Reads approval queues and drives records through their workflow."""

    component = "approvals"

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch workflows")
    async def get_workflows(self) -> list[ApprovalWorkflow]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            WORKFLOWS_TABLE,
            filters=[eq("organization_id", organization_id)],
            order=Order("priority", ascending=False),
        )
        return from_rows(ApprovalWorkflow, rows)

    @gateway_operation("Failed to fetch workflow")
    async def get_workflow(self, workflow_id: str) -> ApprovalWorkflow:
        row = await self._gateway.select_one(WORKFLOWS_TABLE, filters=[eq("id", workflow_id)])
        return from_row(ApprovalWorkflow, row)

    @gateway_operation("Failed to fetch workflow steps")
    async def get_workflow_steps(self, workflow_id: str) -> list[ApprovalStep]:
        rows = await self._gateway.select(
            STEPS_TABLE,
            filters=[eq("workflow_id", workflow_id)],
            order=Order("step_order"),
        )
        return from_rows(ApprovalStep, rows)

    @gateway_operation("Failed to create approval workflow", notify=True)
    async def create_workflow(self, dto: CreateWorkflow) -> ApprovalWorkflow:
        """Insert the workflow, then its steps in one batch."""
        user_id, organization_id = self._context.require_user_and_organization()
        rows = await self._gateway.insert(
            WORKFLOWS_TABLE,
            {
                "organization_id": organization_id,
                "name": dto.name,
                "description": dto.description,
                "conditions": dto.conditions.model_dump(exclude_none=True),
                "priority": dto.priority,
                "is_active": True,
                "created_by": user_id,
            },
        )
        workflow = from_row(ApprovalWorkflow, rows[0])
        await self._gateway.insert(
            STEPS_TABLE,
            [self._step_row(step, workflow_id=workflow.id) for step in dto.steps],
        )
        self._notifier.success("Approval workflow created successfully")
        return workflow

    @gateway_operation("Failed to update workflow", notify=True)
    async def update_workflow(self, workflow_id: str, dto: UpdateWorkflow) -> ApprovalWorkflow:
        values = drop_none(dto.model_dump(exclude={"conditions"}))
        if dto.conditions is not None:
            values["conditions"] = dto.conditions.model_dump(exclude_none=True)
        values["updated_at"] = _now()
        rows = await self._gateway.update(WORKFLOWS_TABLE, values, filters=[eq("id", workflow_id)])
        if not rows:
            raise RowNotVisibleError("Workflow not found", code=ROW_NOT_VISIBLE_CODE)
        self._notifier.success("Workflow updated successfully")
        return from_row(ApprovalWorkflow, rows[0])

    @gateway_operation("Failed to update workflow steps", notify=True)
    async def update_workflow_steps(self, workflow_id: str, steps: list[CreateStep]) -> None:
        """Replace the step list atomically on the server."""
        await self._gateway.rpc(
            "update_workflow_steps",
            {
                "p_workflow_id": workflow_id,
                "p_steps": [step.model_dump(mode="json") for step in steps],
            },
        )
        self._notifier.success("Workflow steps updated successfully")

    @gateway_operation("Failed to delete workflow", notify=True)
    async def delete_workflow(self, workflow_id: str) -> None:
        await self._gateway.delete(WORKFLOWS_TABLE, filters=[eq("id", workflow_id)])
        self._notifier.success("Workflow deleted successfully")

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch pending approvals")
    async def get_pending_approvals(self, filters: Optional[ApprovalFilters] = None) -> list[ApprovalWithDetails]:
        """Records waiting on the current user, newest first."""
        user_id = self._context.require_user_id()
        rows = await self._gateway.select(
            APPROVALS_TABLE,
            filters=[
                eq("current_approver_id", user_id),
                eq("status", ApprovalStatus.PENDING),
                *_date_filters(filters),
            ],
            order=Order("submitted_at", ascending=False),
        )
        return await aggregate_approval_details(self._gateway, from_rows(ApprovalRecord, rows))

    @gateway_operation("Failed to fetch my submissions")
    async def get_my_submissions(self, filters: Optional[ApprovalFilters] = None) -> list[ApprovalWithDetails]:
        _, organization_id = self._context.require_user_and_organization()
        query = [eq("organization_id", organization_id)]
        if filters is not None and filters.status is not None:
            query.append(eq("status", filters.status))
        rows = await self._gateway.select(
            APPROVALS_TABLE,
            filters=query,
            order=Order("submitted_at", ascending=False),
        )
        return await aggregate_approval_details(
            self._gateway,
            from_rows(ApprovalRecord, rows),
            expense_columns="*",
            report_columns="*",
        )

    @gateway_operation("Failed to fetch awaiting payment")
    async def get_awaiting_payment(self, filters: Optional[ApprovalFilters] = None) -> list[ApprovalWithDetails]:
        """Organization records ready for payment, oldest first."""
        _, organization_id = self._context.require_user_and_organization()
        rows = await self._gateway.select(
            APPROVALS_TABLE,
            filters=[
                eq("organization_id", organization_id),
                eq("status", ApprovalStatus.AWAITING_PAYMENT),
                *_date_filters(filters),
            ],
            order=Order("submitted_at"),
        )
        return await aggregate_approval_details(self._gateway, from_rows(ApprovalRecord, rows))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    @gateway_operation("Failed to approve expense", notify=True)
    async def approve(self, approval_id: str, dto: ApproveExpense) -> ApprovalRecord:
        user_id = self._context.require_user_id()
        await self._gateway.rpc(
            "approve_expense",
            {"p_approval_id": approval_id, "p_approver_id": user_id, "p_comment": dto.comment},
        )
        record = await self._refetch(approval_id, ApprovalStatus.APPROVED, "approval")
        self._notifier.success("Expense approved successfully")
        return record

    @gateway_operation("Failed to reject expense", notify=True)
    async def reject(self, approval_id: str, dto: RejectExpense) -> ApprovalRecord:
        user_id = self._context.require_user_id()
        await self._gateway.rpc(
            "reject_expense",
            {
                "p_approval_id": approval_id,
                "p_approver_id": user_id,
                "p_rejection_reason": dto.rejection_reason,
                "p_comment": dto.comment,
            },
        )
        record = await self._refetch(approval_id, ApprovalStatus.REJECTED, "rejection")
        self._notifier.success("Expense rejected")
        return record

    @gateway_operation("Failed to process payment", notify=True)
    async def process_payment(self, approval_id: str, dto: ApproveExpense) -> ApprovalRecord:
        """Complete the payment step; the server marks the record paid."""
        user_id = self._context.require_user_id()
        await self._gateway.rpc(
            "approve_expense",
            {"p_approval_id": approval_id, "p_approver_id": user_id, "p_comment": dto.comment},
        )
        record = await self._refetch(approval_id, ApprovalStatus.PAID, "payment")
        self._notifier.success("Payment processed successfully")
        return record

    async def _refetch(self, approval_id: str, intended: ApprovalStatus, action: str) -> ApprovalRecord:
        # Row-level policies may hide the record from its former approver.
        try:
            row = await self._gateway.select_one(APPROVALS_TABLE, filters=[eq("id", approval_id)])
        except RowNotVisibleError:
            log_event(
                "approval.not_visible_after_action",
                level="warning",
                component=self.component,
                approval_id=approval_id,
                action=action,
            )
            return ApprovalRecord(id=approval_id, status=intended)
        return from_row(ApprovalRecord, row)

    # ------------------------------------------------------------------
    # History, stats, payment queue
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch approval history")
    async def get_approval_history(self, approval_id: str) -> list[ApprovalAction]:
        rows = await self._gateway.select(
            ACTIONS_TABLE,
            filters=[eq("expense_approval_id", approval_id)],
            order=Order("action_at"),
        )
        return from_rows(ApprovalAction, rows)

    @gateway_operation("Failed to fetch approval stats")
    async def get_approval_stats(self) -> ApprovalStats:
        user_id, organization_id = self._context.require_user_and_organization()
        payload: Any = await self._gateway.rpc(
            "get_approval_stats",
            {"p_approver_id": user_id, "p_organization_id": organization_id},
        )
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not payload:
            return ApprovalStats()
        return from_row(ApprovalStats, payload)

    @gateway_operation("Failed to fetch payment queue")
    async def get_payment_queue(self) -> list[PaymentQueueItem]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.rpc(
            "get_payment_queue",
            {
                "p_organization_id": organization_id,
                "p_limit": get_settings().payment_queue_limit,
                "p_offset": 0,
            },
        )
        return from_rows(PaymentQueueItem, rows)

    def can_approve(self, record: ApprovalRecord) -> bool:
        return display.can_approve(record, self._context.user_id)

    @staticmethod
    def _step_row(step: CreateStep, *, workflow_id: str) -> dict[str, Any]:
        return {
            "workflow_id": workflow_id,
            "step_order": step.step_order,
            "step_type": step.step_type.value,
            "approver_role": step.approver_role,
            "approver_user_id": step.approver_user_id,
            "approver_user_ids": step.approver_user_ids,
            "is_payment_step": step.is_payment_step,
        }
