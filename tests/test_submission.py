from __future__ import annotations

import pytest

from expense_app.core.errors import GatewayError, ValidationFailedError
from expense_app.domain.expenses import ExpenseService
from expense_app.domain.notifications import NoopNotifier
from expense_app.domain.reports.entities import ExpenseReport
from expense_app.domain.reports.service import check_submittable, monthly_period
from expense_app.domain.submission import (
    NO_APPROVER_MESSAGE,
    NO_MANAGER_MESSAGE,
    friendly_submission_error,
)

from tests.fixtures.gateway_stub import GatewayStub, body, row_not_visible, signed_in_context


def test_known_chain_errors_get_friendly_messages() -> None:
    manager = friendly_submission_error(GatewayError("User has no active manager assigned", code="P0001"))
    role = friendly_submission_error(GatewayError("No eligible user found with role finance"))
    assert manager.message == NO_MANAGER_MESSAGE
    assert manager.code == "P0001"
    assert role.message == NO_APPROVER_MESSAGE
    assert friendly_submission_error(GatewayError("deadlock detected")) is None


@pytest.mark.asyncio
async def test_submit_without_membership_is_rejected_locally() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/organization_members", reply=row_not_visible)
    service = ExpenseService(stub.client(), signed_in_context(), NoopNotifier())

    with pytest.raises(ValidationFailedError, match="do not have a manager"):
        await service.submit_expense("e1")
    assert stub.calls_to("/rest/v1/rpc/create_approval_chain") == []


@pytest.mark.asyncio
async def test_submit_with_inactive_manager_is_rejected() -> None:
    stub = (
        GatewayStub()
        .on("GET", "/rest/v1/organization_members", {"manager_id": "m9"})
        .on("GET", "/rest/v1/organization_members", [])
    )
    service = ExpenseService(stub.client(), signed_in_context(), NoopNotifier())

    with pytest.raises(ValidationFailedError):
        await service.submit_expense("e1")


@pytest.mark.asyncio
async def test_submit_builds_chain_and_refetches() -> None:
    stub = (
        GatewayStub()
        .on("GET", "/rest/v1/organization_members", {"manager_id": "m1"})
        .on("GET", "/rest/v1/organization_members", [{"id": "m1"}])
        .on("POST", "/rest/v1/rpc/create_approval_chain", None, status=204)
        .on("GET", "/rest/v1/expenses", {"id": "e1", "status": "submitted", "amount": 20})
    )
    service = ExpenseService(stub.client(), signed_in_context(), NoopNotifier())

    expense = await service.submit_expense("e1")

    assert expense.status.value == "submitted"
    chain = stub.calls_to("/rest/v1/rpc/create_approval_chain")[0]
    assert body(chain) == {"p_expense_id": "e1", "p_report_id": None}


@pytest.mark.asyncio
async def test_chain_failure_is_rewritten() -> None:
    stub = (
        GatewayStub()
        .on("GET", "/rest/v1/organization_members", {"manager_id": "m1"})
        .on("GET", "/rest/v1/organization_members", [{"id": "m1"}])
        .on("POST", "/rest/v1/rpc/create_approval_chain",
            {"message": "No eligible user found with role finance", "code": "P0001"}, status=400)
    )
    service = ExpenseService(stub.client(), signed_in_context(), NoopNotifier())

    with pytest.raises(GatewayError) as info:
        await service.submit_expense("e1")
    assert info.value.message == NO_APPROVER_MESSAGE


def test_empty_report_cannot_be_submitted() -> None:
    with pytest.raises(ValidationFailedError, match="empty report"):
        check_submittable(ExpenseReport(id="r1"))


def test_report_expense_without_receipt_blocks_submission() -> None:
    report = ExpenseReport(id="r1", report_expenses=[
        {"id": "j1", "expense": {"merchant": "Cafe", "amount": 5, "expense_date": "2026-01-02", "category": "Meals"}},
    ])
    with pytest.raises(ValidationFailedError, match="receipts"):
        check_submittable(report)


def test_complete_report_passes() -> None:
    report = ExpenseReport(id="r1", report_expenses=[
        {"id": "j1", "expense": {
            "merchant": "Cafe", "amount": 5, "expense_date": "2026-01-02",
            "category": "Meals", "receipt_id": "rc1",
        }},
    ])
    check_submittable(report)
    assert report.expense_count == 1


def test_monthly_period() -> None:
    assert monthly_period("2024-02-14") == ("2024-02", "February 2024 Expenses", "2024-02-01", "2024-02-29")
