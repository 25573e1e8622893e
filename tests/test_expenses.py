from __future__ import annotations

import pytest

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.expenses import ExpenseService
from expense_app.domain.expenses.entities import CreateExpense
from expense_app.domain.notifications import NoopNotifier
from expense_app.domain.reports.service import monthly_period

from tests.fixtures.gateway_stub import GatewayStub, body, params, signed_in_context


def draft_row(expense_date: str) -> dict:
    return {
        "id": "e1",
        "organization_id": "org-1",
        "user_id": "user-1",
        "merchant": "Blue Bottle",
        "amount": 12.5,
        "category": "Meals",
        "expense_date": expense_date,
        "status": "draft",
    }


def new_expense(expense_date: str) -> CreateExpense:
    return CreateExpense(merchant="Blue Bottle", amount=12.5, category="Meals", expense_date=expense_date)


@pytest.mark.asyncio
async def test_create_files_expense_under_monthly_report() -> None:
    stub = (
        GatewayStub()
        .on("POST", "/rest/v1/expenses", [draft_row("2026-03-15")])
        .on("GET", "/rest/v1/expense_reports", [{"id": "r-march", "name": "March 2026 Expenses", "status": "draft"}])
        .on("GET", "/rest/v1/report_expenses", [{"display_order": 2}])
        .on("POST", "/rest/v1/report_expenses", [{"id": "re-1"}])
    )
    service = ExpenseService(stub.client(), signed_in_context(), NoopNotifier())

    expense = await service.create_expense(new_expense("2026-03-15"))

    assert expense.id == "e1"
    inserted = body(stub.calls_to("/rest/v1/expenses", "POST")[0])
    assert inserted["status"] == "draft"
    assert inserted["user_id"] == "user-1"
    lookup = params(stub.calls_to("/rest/v1/expense_reports", "GET")[0])
    assert lookup["auto_report_period"] == ["eq.2026-03"]
    link = body(stub.calls_to("/rest/v1/report_expenses", "POST")[0])
    assert link == {"report_id": "r-march", "expense_id": "e1", "display_order": 3, "added_by": "user-1"}


@pytest.mark.asyncio
async def test_create_survives_a_date_the_monthly_report_cannot_use() -> None:
    stub = GatewayStub().on("POST", "/rest/v1/expenses", [draft_row("03/15/2026")])
    service = ExpenseService(stub.client(), signed_in_context(), NoopNotifier())

    expense = await service.create_expense(new_expense("03/15/2026"))

    assert expense.id == "e1"
    assert stub.calls_to("/rest/v1/expense_reports") == []
    assert stub.calls_to("/rest/v1/report_expenses") == []


@pytest.mark.asyncio
async def test_create_survives_report_lookup_failure() -> None:
    stub = (
        GatewayStub()
        .on("POST", "/rest/v1/expenses", [draft_row("2026-03-15")])
        .on("GET", "/rest/v1/expense_reports", {"message": "permission denied"}, status=403)
    )
    service = ExpenseService(stub.client(), signed_in_context(), NoopNotifier())

    expense = await service.create_expense(new_expense("2026-03-15"))

    assert expense.id == "e1"
    assert stub.calls_to("/rest/v1/report_expenses") == []


def test_monthly_period_rejects_non_iso_dates() -> None:
    with pytest.raises(ValidationFailedError, match="YYYY-MM-DD"):
        monthly_period("03/15/2026")
