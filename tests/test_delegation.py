from __future__ import annotations

import pytest

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.delegation.entities import CreateDelegation, DelegationWithUser
from expense_app.domain.delegation.service import DelegationService
from expense_app.domain.notifications import NoopNotifier
from expense_app.domain.organizations.entities import Organization, OrganizationMember
from expense_app.domain.organizations.service import OrganizationService

from tests.fixtures.gateway_stub import GatewayStub, body, signed_in_context


def test_effective_user_follows_acting_on_behalf_of() -> None:
    context = signed_in_context()
    service = DelegationService(GatewayStub().client(), context, NoopNotifier())

    assert service.get_effective_user_id() == "user-1"
    assert service.get_delegation_metadata() is None

    service.set_acting_on_behalf_of(DelegationWithUser(delegator_id="boss-1"))

    assert service.get_effective_user_id() == "boss-1"
    metadata = service.get_delegation_metadata()
    assert (metadata.submitted_by, metadata.submitted_on_behalf_of) == ("user-1", "boss-1")


def test_switching_organization_drops_delegation() -> None:
    context = signed_in_context()
    context.acting_on_behalf_of.set(DelegationWithUser(delegator_id="boss-1"))

    OrganizationService(GatewayStub().client(), context, NoopNotifier()).set_current_organization(
        Organization(id="org-2", name="Globex"),
        OrganizationMember(id="m-2", organization_id="org-2", user_id="user-1"),
    )

    assert context.organization_id == "org-2"
    assert context.acting_on_behalf_of.get() is None


@pytest.mark.asyncio
async def test_self_delegation_is_rejected_before_gateway() -> None:
    stub = GatewayStub()
    service = DelegationService(stub.client(), signed_in_context(), NoopNotifier())

    with pytest.raises(ValidationFailedError):
        await service.create_delegation(CreateDelegation(delegator_id="user-1", delegate_id="user-1"))
    assert stub.calls == []


@pytest.mark.asyncio
async def test_delegators_refresh_cache() -> None:
    stub = GatewayStub().on("POST", "/rest/v1/rpc/get_delegators_for_user", [
        {"delegator_id": "boss-1", "delegator_name": "Boss", "scope": "create"},
    ])
    service = DelegationService(stub.client(), signed_in_context(), NoopNotifier())

    assert not service.has_delegations()
    delegators = await service.get_my_delegators()

    assert service.has_delegations()
    assert delegators[0].scope.value == "create"
    assert body(stub.calls[0]) == {"p_user_id": "user-1"}
