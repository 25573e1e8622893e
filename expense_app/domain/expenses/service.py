"""Expense CRUD and submission."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from expense_app.config import get_settings
from expense_app.core.errors import ValidationFailedError
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.reports import ReportService
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.domain.submission import NO_MANAGER_MESSAGE, create_approval_chain, has_active_manager
from expense_app.infrastructure.gateway import Order, eq, gte, ilike, in_, lte

from .entities import CreateExpense, Expense, ExpenseFilters, ExpenseSort, ExpenseStatus, UpdateExpense

EXPENSES_TABLE = "expenses"

EXPENSE_WITH_RELATIONS = (
    "*, user:users!expenses_user_id_fkey(*), "
    "receipt:receipts!expenses_receipt_id_fkey(*), "
    "expense_receipts(*, receipt:receipts(*))"
)


def _expense_filters(filters: ExpenseFilters) -> list:
    out = []
    if filters.user_id:
        out.append(eq("user_id", filters.user_id))
    if isinstance(filters.status, list):
        if filters.status:
            out.append(in_("status", filters.status))
    elif filters.status is not None:
        out.append(eq("status", filters.status))
    if filters.category:
        out.append(eq("category", filters.category))
    if filters.merchant:
        out.append(ilike("merchant", f"%{filters.merchant}%"))
    if filters.date_from:
        out.append(gte("expense_date", filters.date_from))
    if filters.date_to:
        out.append(lte("expense_date", filters.date_to))
    if filters.min_amount is not None:
        out.append(gte("amount", filters.min_amount))
    if filters.max_amount is not None:
        out.append(lte("amount", filters.max_amount))
    return out


class ExpenseService(DomainService):
    component = "expenses"

    @gateway_operation("Failed to create expense")
    async def create_expense(self, dto: CreateExpense) -> Expense:
        """Insert a draft expense owned by the current user and file it under its monthly report."""
        user_id, organization_id = self._context.require_user_and_organization()
        rows = await self._gateway.insert(
            EXPENSES_TABLE,
            {
                "organization_id": organization_id,
                "user_id": user_id,
                "merchant": dto.merchant,
                "amount": dto.amount,
                "category": dto.category,
                "expense_date": dto.expense_date,
                "notes": dto.notes,
                "receipt_id": dto.receipt_id,
                "status": ExpenseStatus.DRAFT.value,
                "currency": dto.currency or get_settings().default_currency,
                "original_currency": dto.original_currency,
                "original_amount": dto.original_amount,
                "is_reimbursable": True,
                "policy_violations": [],
            },
        )
        expense = from_row(Expense, rows[0])
        if not expense.is_reported:
            reports = ReportService(self._gateway, self._context, self._notifier)
            await reports.auto_attach_to_monthly_report(expense.id, expense.expense_date)
        return expense

    @gateway_operation("Failed to fetch expense")
    async def get_expense(self, expense_id: str, *, include_relations: bool = True) -> Expense:
        organization_id = self._context.require_organization_id()
        row = await self._gateway.select_one(
            EXPENSES_TABLE,
            columns=EXPENSE_WITH_RELATIONS if include_relations else "*",
            filters=[eq("id", expense_id), eq("organization_id", organization_id)],
        )
        return from_row(Expense, row)

    @gateway_operation("Failed to fetch expenses")
    async def query_expenses(
        self,
        filters: Optional[ExpenseFilters] = None,
        sort: Optional[ExpenseSort] = None,
    ) -> list[Expense]:
        organization_id = self._context.require_organization_id()
        sort = sort or ExpenseSort()
        rows = await self._gateway.select(
            EXPENSES_TABLE,
            columns=EXPENSE_WITH_RELATIONS,
            filters=[eq("organization_id", organization_id), *_expense_filters(filters or ExpenseFilters())],
            order=Order(sort.field, ascending=sort.direction == "asc"),
        )
        return from_rows(Expense, rows)

    async def get_my_expenses(
        self,
        filters: Optional[ExpenseFilters] = None,
        sort: Optional[ExpenseSort] = None,
    ) -> list[Expense]:
        user_id = self._context.require_user_id()
        scoped = (filters or ExpenseFilters()).model_copy(update={"user_id": user_id})
        return await self.query_expenses(scoped, sort)

    @gateway_operation("Failed to update expense")
    async def update_expense(self, expense_id: str, dto: UpdateExpense) -> Expense:
        values = drop_none(dto.model_dump())
        if not values:
            raise ValidationFailedError("Nothing to update")
        rows = await self._gateway.update(EXPENSES_TABLE, values, filters=[eq("id", expense_id)])
        if not rows:
            raise ValidationFailedError("Expense not found")
        return from_row(Expense, rows[0])

    @gateway_operation("Failed to delete expense")
    async def delete_expense(self, expense_id: str) -> None:
        await self._gateway.delete(EXPENSES_TABLE, filters=[eq("id", expense_id)])

    @gateway_operation("Failed to submit expense for approval", notify=True)
    async def submit_expense(self, expense_id: str) -> Expense:
        """Route the expense into its approval chain and return the refreshed row.

        Raises:
            ValidationFailedError: If the submitter has no active manager.
            GatewayError: If the chain cannot be built; known causes carry a
                friendlier message.
        """
        user_id, organization_id = self._context.require_user_and_organization()
        if not await has_active_manager(self._gateway, user_id, organization_id):
            raise ValidationFailedError(NO_MANAGER_MESSAGE)
        await create_approval_chain(self._gateway, expense_id=expense_id)
        expense = await self.get_expense(expense_id)
        self._notifier.success("Expense submitted for approval")
        return expense

    @gateway_operation("Failed to mark expense as reimbursed")
    async def mark_as_reimbursed(self, expense_id: str) -> Expense:
        user_id = self._context.require_user_id()
        rows = await self._gateway.update(
            EXPENSES_TABLE,
            {
                "status": ExpenseStatus.REIMBURSED.value,
                "reimbursed_at": datetime.now(timezone.utc).isoformat(),
                "reimbursed_by": user_id,
            },
            filters=[eq("id", expense_id)],
        )
        if not rows:
            raise ValidationFailedError("Expense not found")
        return from_row(Expense, rows[0])
