from __future__ import annotations

import pytest

from expense_app.core.errors import GatewayError
from expense_app.domain.approval import aggregate_approval_details
from expense_app.domain.approval.entities import ApprovalRecord, ApprovalStatus

from tests.fixtures.gateway_stub import GatewayStub, params


def record(approval_id: str, **kwargs) -> ApprovalRecord:
    return ApprovalRecord(id=approval_id, status=ApprovalStatus.PENDING, **kwargs)


@pytest.mark.asyncio
async def test_returns_one_result_per_record_in_input_order() -> None:
    stub = (
        GatewayStub()
        .on("GET", "/rest/v1/approval_workflows", [{"id": "w1", "name": "Default"}])
        .on("GET", "/rest/v1/expenses", [
            {"id": "e2", "merchant": "Cafe", "amount": 12.5, "user": {"full_name": "Ann", "email": "a@x.io"}},
            {"id": "e1", "merchant": "Hotel", "amount": 300},
        ])
        .on("GET", "/rest/v1/expense_reports", [{"id": "r1", "name": "March"}])
    )
    records = [
        record("a1", workflow_id="w1", expense_id="e1"),
        record("a2", workflow_id="w1", expense_id="e2"),
        record("a3", workflow_id="w1", report_id="r1"),
    ]

    results = await aggregate_approval_details(stub.client(), records)

    assert [r.id for r in results] == ["a1", "a2", "a3"]
    assert results[0].expense.merchant == "Hotel"
    assert results[1].expense.user.full_name == "Ann"
    assert results[2].report.name == "March"
    assert results[2].expense is None
    assert results[0].status is ApprovalStatus.PENDING


@pytest.mark.asyncio
async def test_empty_input_makes_no_lookups() -> None:
    stub = GatewayStub()

    assert await aggregate_approval_details(stub.client(), []) == []
    assert stub.calls == []


@pytest.mark.asyncio
async def test_records_without_foreign_ids_make_no_lookups() -> None:
    stub = GatewayStub()

    results = await aggregate_approval_details(stub.client(), [record("a1"), record("a2")])

    assert [r.id for r in results] == ["a1", "a2"]
    assert all(r.workflow is None and r.expense is None and r.report is None for r in results)
    assert stub.calls == []


@pytest.mark.asyncio
async def test_shared_workflow_is_fetched_once_and_shared() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/approval_workflows", [{"id": "w1", "name": "Default"}])
    records = [record("a1", workflow_id="w1"), record("a2", workflow_id="w1")]

    results = await aggregate_approval_details(stub.client(), records)

    lookups = stub.calls_to("/rest/v1/approval_workflows")
    assert len(lookups) == 1
    assert params(lookups[0])["id"] == ['in.("w1")']
    assert results[0].workflow is results[1].workflow


@pytest.mark.asyncio
async def test_hidden_row_leaves_field_absent() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/expenses", [{"id": "e1", "merchant": "Hotel"}])
    records = [record("a1", expense_id="e1"), record("a2", expense_id="e-hidden")]

    results = await aggregate_approval_details(stub.client(), records)

    assert results[0].expense.id == "e1"
    assert results[1].expense is None


@pytest.mark.asyncio
async def test_any_failed_lookup_fails_the_join() -> None:
    stub = (
        GatewayStub()
        .on("GET", "/rest/v1/approval_workflows", [{"id": "w1"}])
        .on("GET", "/rest/v1/expenses", {"message": "boom"}, status=500)
    )
    records = [record("a1", workflow_id="w1", expense_id="e1")]

    with pytest.raises(GatewayError, match="boom"):
        await aggregate_approval_details(stub.client(), records)
