from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from expense_app.api.core.container import Container, get_container
from expense_app.api.main import app
from expense_app.config import Settings

from tests.fixtures.gateway_stub import BASE_URL, GatewayStub, params, row_not_visible

AUTH = {"Authorization": "Bearer jwt-1", "X-Organization-Id": "org-1"}


ACTIVE_MEMBER = {"id": "m-1", "organization_id": "org-1", "user_id": "user-1", "role": "manager", "is_active": True}


def signed_in_stub(member: dict = ACTIVE_MEMBER, organization_reply=None) -> GatewayStub:
    stub = GatewayStub().on("GET", "/auth/v1/user", {"id": "user-1", "email": "user-1@example.com"})
    if organization_reply is None:
        stub.on("GET", "/rest/v1/organizations", {"id": "org-1", "name": "Acme"})
    else:
        stub.on("GET", "/rest/v1/organizations", reply=organization_reply)
    return stub.on("GET", "/rest/v1/organization_members", [member])


def client_for(stub: GatewayStub) -> TestClient:
    settings = Settings(gateway_url=BASE_URL, gateway_anon_key="anon-key")
    container = Container(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(stub)))
    app.dependency_overrides[get_container] = lambda: container
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_overrides():
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def stub():
    return signed_in_stub()


@pytest.fixture
def client(stub):
    return client_for(stub)


def test_split_total_reports_mismatch(client) -> None:
    r = client.post("/v1/calculations/split-total", json={
        "expense_total": 100.0,
        "items": [
            {"description": "Hotel", "amount": 80.0, "category": "lodging"},
            {"description": "Dinner", "amount": 15.0, "category": "meals"},
        ],
    })
    assert r.status_code == 200
    out = r.json()
    assert out["valid"] is False
    assert out["items_total"] == 95.0
    assert "must equal expense total" in out["message"]


def test_per_diem_calculator(client) -> None:
    r = client.post("/v1/calculations/per-diem", json={
        "mie_rate": 80,
        "days": [
            {"is_first_or_last_day": True},
            {"breakfast": True, "lunch": True},
            {"is_first_or_last_day": True, "dinner": True},
        ],
    })
    assert r.status_code == 200
    assert r.json() == {"daily": [60.0, 40.0, 20.0], "total": 120.0}


def test_per_diem_requires_days(client) -> None:
    r = client.post("/v1/calculations/per-diem", json={"mie_rate": 80, "days": []})
    assert r.status_code == 422


def test_missing_token_is_401_without_gateway_calls(client, stub) -> None:
    r = client.get("/v1/approvals/pending")
    assert r.status_code == 401
    assert r.json()["detail"] == "User not authenticated"
    assert stub.calls == []


def test_missing_organization_header_is_400(client) -> None:
    r = client.get("/v1/approvals/pending", headers={"Authorization": "Bearer jwt-1"})
    assert r.status_code == 400
    assert r.json()["detail"] == "No organization selected"


def test_inactive_member_is_403() -> None:
    client = client_for(signed_in_stub(member={**ACTIVE_MEMBER, "is_active": False}))
    r = client.get("/v1/approvals/pending", headers=AUTH)
    assert r.status_code == 403


def test_pending_approvals_act_as_caller(stub, client) -> None:
    stub.on("GET", "/rest/v1/expense_approvals", [])

    r = client.get("/v1/approvals/pending", headers=AUTH)

    assert r.status_code == 200
    assert r.json() == []
    call = stub.calls_to("/rest/v1/expense_approvals")[0]
    assert call.headers["Authorization"] == "Bearer jwt-1"
    assert params(call)["current_approver_id"] == ["eq.user-1"]


def test_gateway_server_error_maps_to_502(stub, client) -> None:
    stub.on("GET", "/rest/v1/expense_approvals", {"message": "boom"}, status=500)

    r = client.get("/v1/approvals/pending", headers=AUTH)

    assert r.status_code == 502
    assert r.json()["detail"] == "boom"


def test_row_not_visible_maps_to_404() -> None:
    client = client_for(signed_in_stub(organization_reply=row_not_visible))

    r = client.get("/v1/approvals/stats", headers=AUTH)

    assert r.status_code == 404
    assert r.json()["code"] == "PGRST116"
