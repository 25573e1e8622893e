from __future__ import annotations

import httpx
import pytest
from httpx import MockTransport, Response

from expense_app.core.errors import GatewayError, RowNotVisibleError
from expense_app.infrastructure.gateway import GatewayClient, GatewayConfig, Order, eq

from tests.fixtures.gateway_stub import GatewayStub, body, params, row_not_visible


@pytest.mark.asyncio
async def test_select_sends_filters_order_and_keys() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/expenses", [{"id": "e1"}])
    gateway = stub.client()

    rows = await gateway.select(
        "expenses",
        columns="id",
        filters=[eq("user_id", "u1")],
        order=Order("created_at", ascending=False),
        limit=5,
    )

    assert rows == [{"id": "e1"}]
    request = stub.calls[0]
    assert params(request) == {
        "select": ["id"],
        "user_id": ["eq.u1"],
        "order": ["created_at.desc"],
        "limit": ["5"],
    }
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer anon-key"


@pytest.mark.asyncio
async def test_access_token_replaces_anon_bearer() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/expenses", [])
    gateway = stub.client()
    gateway.set_access_token("user-token")

    await gateway.select("expenses")

    assert stub.calls[0].headers["Authorization"] == "Bearer user-token"
    assert stub.calls[0].headers["apikey"] == "anon-key"


@pytest.mark.asyncio
async def test_select_one_without_rows_raises_row_not_visible() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/expense_approvals", reply=row_not_visible)

    with pytest.raises(RowNotVisibleError) as info:
        await stub.client().select_one("expense_approvals", filters=[eq("id", "a1")])

    assert info.value.code == "PGRST116"
    assert stub.calls[0].headers["Accept"] == "application/vnd.pgrst.object+json"


@pytest.mark.asyncio
async def test_error_payload_is_kept_verbatim() -> None:
    stub = GatewayStub().on(
        "POST",
        "/rest/v1/rpc/approve_expense",
        {"code": "P0001", "message": "Not the current approver", "details": "step 2", "hint": "refresh"},
        status=400,
    )

    with pytest.raises(GatewayError) as info:
        await stub.client().rpc("approve_expense", {"p_approval_id": "a1"})

    err = info.value
    assert not isinstance(err, RowNotVisibleError)
    assert err.message == "Not the current approver"
    assert (err.code, err.status_code, err.details, err.hint) == ("P0001", 400, "step 2", "refresh")


@pytest.mark.asyncio
async def test_transport_failure_becomes_gateway_error() -> None:
    def boom(request: httpx.Request) -> Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=MockTransport(boom))
    gateway = GatewayClient(GatewayConfig(url="http://gateway.test", anon_key="k"), client=client)

    with pytest.raises(GatewayError) as info:
        await gateway.select("expenses")

    assert info.value.code == "transport_error"


@pytest.mark.asyncio
async def test_upsert_merges_on_conflict_columns() -> None:
    stub = GatewayStub().on("POST", "/rest/v1/currency_exchange_rates", [{"id": "r1"}])

    rows = await stub.client().upsert(
        "currency_exchange_rates",
        {"from_currency": "EUR", "to_currency": "USD", "rate": 1.1},
        on_conflict="from_currency,to_currency,effective_date",
    )

    request = stub.calls[0]
    assert rows == [{"id": "r1"}]
    assert params(request)["on_conflict"] == ["from_currency,to_currency,effective_date"]
    assert request.headers["Prefer"] == "resolution=merge-duplicates,return=representation"
    assert body(request)["rate"] == 1.1


@pytest.mark.asyncio
async def test_signed_url_is_made_absolute() -> None:
    stub = GatewayStub().on(
        "POST",
        "/storage/v1/object/sign/receipts/org/u/file.png",
        {"signedURL": "/object/sign/receipts/org/u/file.png?token=t"},
    )

    url = await stub.client().create_signed_url("receipts", "org/u/file.png", expires_in=60)

    assert url == "http://gateway.test/storage/v1/object/sign/receipts/org/u/file.png?token=t"
    assert body(stub.calls[0]) == {"expiresIn": 60}
