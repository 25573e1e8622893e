"""Client-side join of approval records with their related rows.

The gateway's relation cache cannot be trusted to embed workflows, expenses
and reports on ``expense_approvals``, so the join happens here:

1. collect the distinct foreign ids per related table
2. fetch each table once with a batched ``id in (...)`` lookup, concurrently
3. hash-join the rows back onto the records, preserving input order

Any lookup failure aborts the whole join. Rows the caller may not see
(row-level policies) simply leave the matching detail field empty.
"""
from __future__ import annotations

from dataclasses import fields
from typing import Any, Awaitable, Iterable, Sequence, TypeVar

from expense_app.domain.concurrency import gather_fail_fast
from expense_app.domain.rows import from_rows
from expense_app.infrastructure.gateway import GatewayClient, in_

from .entities import (
    ApprovalRecord,
    ApprovalWithDetails,
    ExpenseSummary,
    ReportSummary,
    WorkflowSummary,
)

T = TypeVar("T")

WORKFLOWS_TABLE = "approval_workflows"
EXPENSES_TABLE = "expenses"
REPORTS_TABLE = "expense_reports"

EXPENSE_WITH_SUBMITTER = "*, user:users!expenses_user_id_fkey(*)"
REPORT_WITH_SUBMITTER = "*, user:users!expense_reports_user_id_fkey(*)"

_RECORD_FIELDS = tuple(f.name for f in fields(ApprovalRecord))


def distinct_ids(values: Iterable[str | None]) -> list[str]:
    """Distinct non-empty ids, first-seen order."""
    return list(dict.fromkeys(v for v in values if v))


async def _lookup(
    gateway: GatewayClient,
    table: str,
    columns: str,
    ids: list[str],
    entity: type[T],
) -> dict[str, T]:
    rows = await gateway.select(table, columns=columns, filters=[in_("id", ids)])
    return {item.id: item for item in from_rows(entity, rows)}


async def aggregate_approval_details(
    gateway: GatewayClient,
    records: Sequence[ApprovalRecord],
    *,
    expense_columns: str = EXPENSE_WITH_SUBMITTER,
    report_columns: str = REPORT_WITH_SUBMITTER,
) -> list[ApprovalWithDetails]:
    """Decorate approval records with workflow, expense and report details.

    Args:
        gateway: Gateway used for the batched lookups.
        records: Approval records, already filtered and sorted.
        expense_columns: Column list for the expense lookup.
        report_columns: Column list for the report lookup.

    Returns:
        One ApprovalWithDetails per record, in input order.

    Raises:
        GatewayError: If any lookup fails. No partial result is returned.
    """
    if not records:
        return []

    workflow_ids = distinct_ids(r.workflow_id for r in records)
    expense_ids = distinct_ids(r.expense_id for r in records)
    report_ids = distinct_ids(r.report_id for r in records)

    lookups: dict[str, Awaitable[dict[str, Any]]] = {}
    if workflow_ids:
        lookups["workflows"] = _lookup(gateway, WORKFLOWS_TABLE, "*", workflow_ids, WorkflowSummary)
    if expense_ids:
        lookups["expenses"] = _lookup(gateway, EXPENSES_TABLE, expense_columns, expense_ids, ExpenseSummary)
    if report_ids:
        lookups["reports"] = _lookup(gateway, REPORTS_TABLE, report_columns, report_ids, ReportSummary)

    results = dict(zip(lookups.keys(), await gather_fail_fast(*lookups.values())))
    workflows = results.get("workflows", {})
    expenses = results.get("expenses", {})
    reports = results.get("reports", {})

    return [
        ApprovalWithDetails(
            **{name: getattr(record, name) for name in _RECORD_FIELDS},
            workflow=workflows.get(record.workflow_id) if record.workflow_id else None,
            expense=expenses.get(record.expense_id) if record.expense_id else None,
            report=reports.get(record.report_id) if record.report_id else None,
        )
        for record in records
    ]
