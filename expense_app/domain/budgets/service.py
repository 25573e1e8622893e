"""Budgets, their current-period usage and pre-submission budget checks."""
from __future__ import annotations

from datetime import date
from typing import Optional

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq
from expense_app.observability.tracing import log_event

from .entities import (
    Budget,
    BudgetCheckResult,
    BudgetFilters,
    BudgetSummary,
    BudgetTracking,
    BudgetUsage,
    CreateBudget,
    ExpenseBudgetCheck,
    UpdateBudget,
)

BUDGETS_TABLE = "budgets"
BUDGET_WITH_TRACKING = "*, budget_tracking(*)"
ATTENTION_STATUSES = ("warning", "exceeded")


def _day(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value[:10]) if value else None


def current_tracking(budget: Budget, today: date) -> Optional[BudgetTracking]:
    for tracking in budget.budget_tracking:
        start, end = _day(tracking.period_start), _day(tracking.period_end)
        if start and end and start <= today <= end:
            return tracking
    return None


def budget_usage(budget: Budget, today: Optional[date] = None) -> BudgetUsage:
    """Spent plus pending of the period covering ``today``, against the budget amount.

    Over the amount is ``exceeded``; reaching the alert threshold is ``warning``.
    ``percent_used`` is rounded and clamped to 0..100.
    """
    tracking = current_tracking(budget, today or date.today())
    total_used = (tracking.spent_amount + tracking.pending_amount) if tracking else 0.0
    if budget.amount > 0:
        percent = round(total_used / budget.amount * 100)
    else:
        percent = 100 if total_used > 0 else 0
    percent = min(100, max(0, percent))

    if total_used > budget.amount:
        status = "exceeded"
    elif percent >= budget.alert_threshold_percent:
        status = "warning"
    else:
        status = "under"
    return BudgetUsage(
        budget=budget,
        tracking=tracking,
        total_used=total_used,
        remaining_amount=budget.amount - total_used,
        percent_used=percent,
        status=status,
    )


def summarize(usages: list[BudgetUsage]) -> BudgetSummary:
    statuses = [usage.status for usage in usages]
    return BudgetSummary(
        total_budgets=len(usages),
        under_budget=statuses.count("under"),
        at_warning=statuses.count("warning"),
        exceeded=statuses.count("exceeded"),
    )


class BudgetService(DomainService):
    component = "budgets"

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch budgets")
    async def get_budgets(
        self,
        filters: Optional[BudgetFilters] = None,
        include_tracking: bool = True,
    ) -> list[BudgetUsage]:
        organization_id = self._context.require_organization_id()
        filters = filters or BudgetFilters()
        query = [eq("organization_id", organization_id)]
        if not filters.include_inactive:
            query.append(eq("is_active", True))
        for column in ("budget_type", "department", "category", "user_id"):
            value = getattr(filters, column)
            if value:
                query.append(eq(column, value))
        rows = await self._gateway.select(
            BUDGETS_TABLE,
            columns=BUDGET_WITH_TRACKING if include_tracking else "*",
            filters=query,
            order=Order("created_at", ascending=False),
        )
        usages = [budget_usage(budget) for budget in from_rows(Budget, rows)]
        if filters.status:
            usages = [usage for usage in usages if usage.status == filters.status]
        return usages

    @gateway_operation("Failed to fetch budget")
    async def get_budget(self, budget_id: str) -> BudgetUsage:
        organization_id = self._context.require_organization_id()
        row = await self._gateway.select_one(
            BUDGETS_TABLE,
            columns=BUDGET_WITH_TRACKING,
            filters=[eq("id", budget_id), eq("organization_id", organization_id)],
        )
        return budget_usage(from_row(Budget, row))

    @gateway_operation("Failed to create budget", notify=True)
    async def create_budget(self, dto: CreateBudget) -> Budget:
        user_id, organization_id = self._context.require_user_and_organization()
        values = dto.model_dump()
        values.update(organization_id=organization_id, is_active=True, created_by=user_id)
        rows = await self._gateway.insert(BUDGETS_TABLE, values)
        budget = from_row(Budget, rows[0])
        log_event("budgets.created", component=self.component, budget_id=budget.id, budget_type=budget.budget_type)
        self._notifier.success("Budget created successfully")
        return budget

    @gateway_operation("Failed to update budget", notify=True)
    async def update_budget(self, budget_id: str, dto: UpdateBudget) -> Budget:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.update(
            BUDGETS_TABLE,
            drop_none(dto.model_dump()),
            filters=[eq("id", budget_id), eq("organization_id", organization_id)],
        )
        if not rows:
            raise ValidationFailedError("Budget not found")
        self._notifier.success("Budget updated successfully")
        return from_row(Budget, rows[0])

    @gateway_operation("Failed to delete budget", notify=True)
    async def delete_budget(self, budget_id: str) -> None:
        """Deactivates the budget; its tracking history stays."""
        organization_id = self._context.require_organization_id()
        await self._gateway.update(
            BUDGETS_TABLE,
            {"is_active": False},
            filters=[eq("id", budget_id), eq("organization_id", organization_id)],
        )
        self._notifier.success("Budget deleted successfully")

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    @gateway_operation("Failed to check expense against budgets")
    async def check_expense(self, expense: ExpenseBudgetCheck) -> list[BudgetCheckResult]:
        user_id, organization_id = self._context.require_user_and_organization()
        payload = await self._gateway.rpc(
            "check_expense_budgets",
            {
                "p_organization_id": organization_id,
                "p_user_id": user_id,
                "p_category": expense.category,
                "p_amount": expense.amount,
                "p_expense_date": expense.expense_date,
            },
        )
        return from_rows(BudgetCheckResult, payload or [])

    async def get_budget_warnings(self, expense: ExpenseBudgetCheck) -> list[BudgetCheckResult]:
        results = await self.check_expense(expense)
        return [result for result in results if result.status in ATTENTION_STATUSES]

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    async def get_summary(self) -> BudgetSummary:
        return summarize(await self.get_budgets())

    async def get_budgets_needing_attention(self, limit: int = 5) -> list[BudgetUsage]:
        usages = [usage for usage in await self.get_budgets() if usage.status in ATTENTION_STATUSES]
        usages.sort(key=lambda usage: usage.percent_used, reverse=True)
        return usages[:limit]

    async def get_my_budgets(self) -> list[BudgetUsage]:
        """Organization and department budgets, plus individual budgets assigned to the caller."""
        user_id = self._context.require_user_id()
        return [
            usage
            for usage in await self.get_budgets()
            if usage.budget.budget_type in ("organization", "department")
            or (usage.budget.budget_type == "user" and usage.budget.user_id == user_id)
        ]
