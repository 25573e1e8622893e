from __future__ import annotations

import pytest

from expense_app.domain.notifications import NoopNotifier
from expense_app.domain.policies.service import PolicyService

from tests.fixtures.gateway_stub import GatewayStub, body, signed_in_context


@pytest.mark.asyncio
async def test_policy_stats_group_by_scope() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/expense_policies", [
        {"id": "p1", "is_active": True, "scope_type": "organization"},
        {"id": "p2", "is_active": False, "scope_type": "role"},
        {"id": "p3", "is_active": True, "scope_type": "role"},
    ])
    stats = await PolicyService(stub.client(), signed_in_context(), NoopNotifier()).get_policy_stats()

    assert (stats.total, stats.active) == (3, 2)
    assert stats.by_scope == {"organization": 1, "role": 2}


@pytest.mark.asyncio
@pytest.mark.parametrize("reply, created", [({"policies_created": 4}, 4), (2, 2), (None, 0)])
async def test_apply_preset_reports_created_count(reply, created) -> None:
    stub = GatewayStub().on("POST", "/rest/v1/rpc/apply_policy_preset", reply)
    service = PolicyService(stub.client(), signed_in_context(), NoopNotifier())

    assert await service.apply_preset("startup") == created
    assert body(stub.calls[0]) == {"p_organization_id": "org-1", "p_preset_name": "startup"}
