"""Expense reports: grouping expenses and submitting them as one unit."""
from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Optional

from expense_app.core.errors import GatewayError, ValidationFailedError
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.domain.submission import NO_MANAGER_MESSAGE, create_approval_chain, has_active_manager
from expense_app.infrastructure.gateway import Order, any_of, eq, gte, ilike, lte
from expense_app.observability.tracing import log_event

from .entities import CreateReport, ExpenseReport, ReportFilters, ReportStats, ReportStatus, UpdateReport

REPORTS_TABLE = "expense_reports"
JUNCTION_TABLE = "report_expenses"

REPORT_WITH_EXPENSES = (
    "*, report_expenses(id, expense_id, display_order, added_at, added_by, "
    "expense:expenses(*, receipt:receipts!expenses_receipt_id_fkey(*), "
    "expense_receipts(receipt:receipts(*))))"
)

# Raised by the gateway when a remote procedure is not deployed.
UNDEFINED_FUNCTION_CODE = "42883"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def monthly_period(expense_date: Optional[str]) -> tuple[str, str, str, str]:
    """Period key, display name, first day and last day of the expense's month.

    Raises:
        ValidationFailedError: If ``expense_date`` is not an ISO date.
    """
    try:
        target = date.fromisoformat(expense_date[:10]) if expense_date else date.today()
    except ValueError as exc:
        raise ValidationFailedError(f"Expense date must be YYYY-MM-DD, got {expense_date!r}") from exc
    last_day = calendar.monthrange(target.year, target.month)[1]
    start = target.replace(day=1)
    end = target.replace(day=last_day)
    key = f"{target.year}-{target.month:02d}"
    name = f"{calendar.month_name[target.month]} {target.year} Expenses"
    return key, name, start.isoformat(), end.isoformat()


def check_submittable(report: ExpenseReport) -> None:
    """Local checks a report must pass before it enters an approval chain.

    Raises:
        ValidationFailedError: Empty report, missing receipts or missing fields.
    """
    if not report.report_expenses:
        raise ValidationFailedError("Cannot submit empty report. Add expenses first.")
    expenses = [entry.expense or {} for entry in report.report_expenses]
    for expense in expenses:
        if not (expense.get("expense_receipts") or expense.get("receipt_id") or expense.get("receipt")):
            raise ValidationFailedError("All expenses must have receipts before submitting the report.")
    for expense in expenses:
        if not all(expense.get(key) for key in ("merchant", "amount", "expense_date", "category")):
            raise ValidationFailedError(
                "All expenses need merchant, amount, category, and date before submission."
            )


class ReportService(DomainService):
    component = "reports"

    @gateway_operation("Failed to fetch reports")
    async def get_reports(self, filters: Optional[ReportFilters] = None) -> list[ExpenseReport]:
        organization_id = self._context.require_organization_id()
        filters = filters or ReportFilters()
        query = [eq("organization_id", organization_id)]
        if filters.status is not None:
            query.append(eq("status", filters.status))
        if filters.user_id:
            query.append(eq("user_id", filters.user_id))
        if filters.start_date:
            query.append(gte("start_date", filters.start_date))
        if filters.end_date:
            query.append(lte("end_date", filters.end_date))
        if filters.search:
            pattern = f"*{filters.search}*"
            query.append(any_of(ilike("name", pattern), ilike("description", pattern)))

        offset = None
        if filters.page is not None and filters.limit is not None:
            offset = filters.page * filters.limit
        rows = await self._gateway.select(
            REPORTS_TABLE,
            columns=REPORT_WITH_EXPENSES,
            filters=query,
            order=Order(filters.sort_by, ascending=filters.sort_order == "asc"),
            limit=filters.limit if offset is not None else None,
            offset=offset,
        )
        return from_rows(ExpenseReport, rows)

    @gateway_operation("Failed to fetch report")
    async def get_report(self, report_id: str) -> ExpenseReport:
        row = await self._gateway.select_one(
            REPORTS_TABLE,
            columns=REPORT_WITH_EXPENSES,
            filters=[eq("id", report_id)],
        )
        return from_row(ExpenseReport, row)

    @gateway_operation("Failed to create report")
    async def create_report(self, dto: CreateReport) -> ExpenseReport:
        """Insert a draft report, then attach the initial expenses in order."""
        user_id, organization_id = self._context.require_user_and_organization()
        rows = await self._gateway.insert(
            REPORTS_TABLE,
            {
                "organization_id": organization_id,
                "user_id": user_id,
                "name": dto.name,
                "description": dto.description,
                "start_date": dto.start_date,
                "end_date": dto.end_date,
                "status": ReportStatus.DRAFT.value,
                "total_amount": 0,
            },
        )
        report = from_row(ExpenseReport, rows[0])
        if dto.expense_ids:
            await self._gateway.insert(
                JUNCTION_TABLE,
                [
                    {
                        "report_id": report.id,
                        "expense_id": expense_id,
                        "display_order": index,
                        "added_by": user_id,
                    }
                    for index, expense_id in enumerate(dto.expense_ids)
                ],
            )
        return report

    @gateway_operation("Failed to update report")
    async def update_report(self, report_id: str, dto: UpdateReport) -> ExpenseReport:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(REPORTS_TABLE, values, filters=[eq("id", report_id)])
        if not rows:
            raise ValidationFailedError("Report not found")
        return from_row(ExpenseReport, rows[0])

    @gateway_operation("Failed to delete report")
    async def delete_report(self, report_id: str) -> None:
        await self._gateway.delete(REPORTS_TABLE, filters=[eq("id", report_id)])

    @gateway_operation("Failed to add expense to report")
    async def add_expense_to_report(self, report_id: str, expense_id: str) -> None:
        user_id = self._context.require_user_id()
        await self._append_expense(report_id, expense_id, user_id)

    @gateway_operation("Failed to remove expense")
    async def remove_expense_from_report(self, report_id: str, expense_id: str) -> None:
        await self._gateway.delete(
            JUNCTION_TABLE,
            filters=[eq("report_id", report_id), eq("expense_id", expense_id)],
        )

    @gateway_operation("Failed to reorder expenses")
    async def reorder_expenses(self, report_id: str, expense_ids: list[str]) -> None:
        """Persist a new display order; falls back to per-row updates when the procedure is missing."""
        if not expense_ids:
            return
        try:
            await self._gateway.rpc(
                "reorder_report_expenses",
                {"p_report_id": report_id, "p_expense_ids": expense_ids},
            )
        except GatewayError as exc:
            if exc.code != UNDEFINED_FUNCTION_CODE:
                raise
            for index, expense_id in enumerate(expense_ids):
                await self._gateway.update(
                    JUNCTION_TABLE,
                    {"display_order": index},
                    filters=[eq("report_id", report_id), eq("expense_id", expense_id)],
                    columns="id",
                )

    async def auto_attach_to_monthly_report(self, expense_id: str, expense_date: Optional[str]) -> None:
        """Best effort: file a new expense under the user's draft report for its month."""
        try:
            report = await self._ensure_monthly_report(expense_date)
            await self._append_expense(report.id, expense_id, self._context.require_user_id())
        except (GatewayError, ValidationFailedError) as exc:
            log_event(
                "reports.auto_attach_skipped",
                level="warning",
                component=self.component,
                expense_id=expense_id,
                error=str(exc),
            )

    @gateway_operation("Failed to submit report", notify=True)
    async def submit_report(self, report_id: str) -> ExpenseReport:
        user_id, organization_id = self._context.require_user_and_organization()
        if not await has_active_manager(self._gateway, user_id, organization_id):
            raise ValidationFailedError(NO_MANAGER_MESSAGE)
        check_submittable(await self.get_report(report_id))
        await create_approval_chain(self._gateway, report_id=report_id)
        report = await self.get_report(report_id)
        self._notifier.success("Report submitted for approval")
        return report

    @gateway_operation("Failed to resubmit report", notify=True)
    async def resubmit_report(self, report_id: str) -> ExpenseReport:
        user_id = self._context.require_user_id()
        report = await self.get_report(report_id)
        if report.status != ReportStatus.REJECTED:
            raise ValidationFailedError("Only rejected reports can be resubmitted")
        await self._gateway.rpc("resubmit_report", {"p_report_id": report_id, "p_submitter_id": user_id})
        return await self.get_report(report_id)

    @gateway_operation("Failed to fetch report stats")
    async def get_report_stats(self, report_id: str) -> ReportStats:
        payload = await self._gateway.rpc("get_report_stats", {"p_report_id": report_id})
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        return from_row(ReportStats, payload) if payload else ReportStats()

    async def _append_expense(self, report_id: str, expense_id: str, user_id: str) -> None:
        last = await self._gateway.select(
            JUNCTION_TABLE,
            columns="display_order",
            filters=[eq("report_id", report_id)],
            order=Order("display_order", ascending=False),
            limit=1,
        )
        next_order = (last[0].get("display_order") or 0) + 1 if last else 0
        await self._gateway.insert(
            JUNCTION_TABLE,
            {
                "report_id": report_id,
                "expense_id": expense_id,
                "display_order": next_order,
                "added_by": user_id,
            },
        )

    async def _ensure_monthly_report(self, expense_date: Optional[str]) -> ExpenseReport:
        user_id, organization_id = self._context.require_user_and_organization()
        key, name, start, end = monthly_period(expense_date)
        existing = await self._gateway.select(
            REPORTS_TABLE,
            filters=[
                eq("organization_id", organization_id),
                eq("user_id", user_id),
                eq("status", ReportStatus.DRAFT),
                eq("auto_created", True),
                eq("auto_report_period", key),
            ],
            limit=1,
        )
        if existing:
            return from_row(ExpenseReport, existing[0])
        rows = await self._gateway.insert(
            REPORTS_TABLE,
            {
                "organization_id": organization_id,
                "user_id": user_id,
                "name": name,
                "description": "Auto-created monthly report",
                "start_date": start,
                "end_date": end,
                "status": ReportStatus.DRAFT.value,
                "auto_created": True,
                "auto_report_period": key,
            },
        )
        return from_row(ExpenseReport, rows[0])
