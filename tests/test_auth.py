from __future__ import annotations

import pytest

from expense_app.core.errors import GatewayError
from expense_app.domain.auth import AuthService
from expense_app.domain.context import SessionContext
from expense_app.domain.notifications import NoopNotifier

from tests.fixtures.gateway_stub import GatewayStub, body, params, signed_in_context


@pytest.mark.asyncio
async def test_sign_in_populates_context_and_token() -> None:
    stub = (
        GatewayStub()
        .on("POST", "/auth/v1/token", {"access_token": "jwt-1", "user": {"id": "u1", "email": "a@x.io"}})
        .on("GET", "/rest/v1/expenses", [])
    )
    gateway = stub.client()
    context = SessionContext()

    user = await AuthService(gateway, context, NoopNotifier()).sign_in("a@x.io", "pw")
    await gateway.select("expenses")

    assert context.user_id == "u1"
    assert user.access_token == "jwt-1"
    assert params(stub.calls[0]) == {"grant_type": ["password"]}
    assert body(stub.calls[0]) == {"email": "a@x.io", "password": "pw"}
    assert stub.calls[1].headers["Authorization"] == "Bearer jwt-1"


@pytest.mark.asyncio
async def test_bad_credentials_leave_context_empty() -> None:
    stub = GatewayStub().on(
        "POST", "/auth/v1/token", {"error": "invalid_grant", "error_description": "Invalid login credentials"}, status=400
    )
    context = SessionContext()

    with pytest.raises(GatewayError, match="Invalid login credentials"):
        await AuthService(stub.client(), context, NoopNotifier()).sign_in("a@x.io", "nope")
    assert context.user_id is None


@pytest.mark.asyncio
async def test_sign_out_clears_context_even_when_gateway_fails() -> None:
    stub = GatewayStub().on("POST", "/auth/v1/logout", {"message": "down"}, status=503)
    context = signed_in_context()

    with pytest.raises(GatewayError):
        await AuthService(stub.client(), context, NoopNotifier()).sign_out()

    assert context.user_id is None
    assert context.organization_id is None
    assert stub.calls[0].headers["Authorization"] == "Bearer token-1"
