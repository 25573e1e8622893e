"""Splitting one expense into categorized line items."""
from __future__ import annotations

from typing import Optional, Sequence

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq

from .entities import CreateExpenseItem, ExpenseItem, UpdateExpenseItem

ITEMS_TABLE = "expense_items"

SPLIT_TOLERANCE = 0.01
MIN_SPLIT_ITEMS = 2
TOO_FEW_ITEMS_MESSAGE = "At least 2 items required to split an expense"


def validate_split_total(expense_total: float, items: Sequence[CreateExpenseItem]) -> Optional[str]:
    """Return an error message, or None when the items can replace the expense.

    Items must number at least two and sum to the expense total within one cent.
    """
    if len(items) < MIN_SPLIT_ITEMS:
        return TOO_FEW_ITEMS_MESSAGE
    items_total = sum(item.amount for item in items)
    if abs(items_total - expense_total) > SPLIT_TOLERANCE:
        return (
            f"Split items total (${items_total:.2f}) "
            f"must equal expense total (${expense_total:.2f})"
        )
    return None


class ExpenseSplittingService(DomainService):
    component = "expense_splitting"

    @gateway_operation("Failed to fetch expense items")
    async def get_expense_items(self, expense_id: str) -> list[ExpenseItem]:
        rows = await self._gateway.select(
            ITEMS_TABLE,
            columns="*, receipt:receipts(*)",
            filters=[eq("expense_id", expense_id)],
            order=Order("line_number"),
        )
        return from_rows(ExpenseItem, rows)

    @gateway_operation("Failed to split expense", notify=True)
    async def split_expense(self, expense_id: str, items: Sequence[CreateExpenseItem]) -> list[ExpenseItem]:
        if len(items) < MIN_SPLIT_ITEMS:
            raise ValidationFailedError(TOO_FEW_ITEMS_MESSAGE)
        rows = await self._gateway.rpc(
            "split_expense",
            {
                "p_expense_id": expense_id,
                "p_items": [
                    {"description": i.description, "amount": i.amount, "category": i.category}
                    for i in items
                ],
            },
        )
        self._notifier.success("Expense split successfully")
        return from_rows(ExpenseItem, rows)

    @gateway_operation("Failed to unsplit expense", notify=True)
    async def unsplit_expense(self, expense_id: str) -> None:
        await self._gateway.rpc("unsplit_expense", {"p_expense_id": expense_id})
        self._notifier.success("Expense unsplit successfully")

    @gateway_operation("Failed to add expense item")
    async def add_expense_item(self, expense_id: str, item: CreateExpenseItem) -> ExpenseItem:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.insert(
            ITEMS_TABLE,
            {
                "expense_id": expense_id,
                "organization_id": organization_id,
                "description": item.description,
                "amount": item.amount,
                "category": item.category,
                "receipt_id": item.receipt_id,
            },
        )
        return from_row(ExpenseItem, rows[0])

    @gateway_operation("Failed to update expense item")
    async def update_expense_item(self, item_id: str, item: UpdateExpenseItem) -> ExpenseItem:
        rows = await self._gateway.update(ITEMS_TABLE, drop_none(item.model_dump()), filters=[eq("id", item_id)])
        if not rows:
            raise ValidationFailedError("Expense item not found")
        return from_row(ExpenseItem, rows[0])

    @gateway_operation("Failed to delete expense item")
    async def delete_expense_item(self, item_id: str) -> None:
        await self._gateway.delete(ITEMS_TABLE, filters=[eq("id", item_id)])
