from __future__ import annotations

import pytest

from expense_app.domain.notifications import NoopNotifier
from expense_app.domain.subscriptions import SubscriptionService, annual_savings, compute_usage_limits, format_price
from expense_app.domain.subscriptions.entities import OrganizationSubscription, SubscriptionPlan

from tests.fixtures.gateway_stub import GatewayStub, body, row_not_visible, signed_in_context

STARTER = {
    "id": "p-starter",
    "name": "starter",
    "monthly_price_cents": 999,
    "annual_price_cents": 9590,
    "max_users": 3,
    "features": {"receipts_per_month": 100},
}


def test_format_price() -> None:
    assert format_price(999) == "$9.99/month"
    assert format_price(9590, "annual") == "$95.90/year"
    assert format_price(0) == "$0.00/month"


def test_annual_savings() -> None:
    assert annual_savings(SubscriptionPlan(id="p", monthly_price_cents=999, annual_price_cents=9590)) == 20
    assert annual_savings(SubscriptionPlan(id="p", monthly_price_cents=1000, annual_price_cents=11400)) == 5
    assert annual_savings(SubscriptionPlan(id="free")) == 0


def test_usage_limits_treat_missing_limit_as_unlimited() -> None:
    limited = compute_usage_limits(
        OrganizationSubscription(id="s", current_month_receipts=100, current_user_count=2, plan=STARTER)
    )
    assert limited.receipts_remaining == 0
    assert limited.at_receipt_limit
    assert not limited.at_user_limit

    unlimited = compute_usage_limits(
        OrganizationSubscription(id="s", current_month_receipts=5000, plan={"id": "p", "name": "business"})
    )
    assert unlimited.receipt_limit is None
    assert unlimited.receipts_remaining is None
    assert not unlimited.at_receipt_limit


@pytest.mark.asyncio
async def test_missing_subscription_row_means_free_plan() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/organization_subscriptions", reply=row_not_visible)
    service = SubscriptionService(stub.client(), signed_in_context(), NoopNotifier())

    assert await service.load_subscription() is None
    assert service.current_plan_name() == "free"
    assert not service.is_paid_plan()
    assert service.can_upload_receipt().allowed


@pytest.mark.asyncio
async def test_loaded_subscription_drives_limit_checks() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/organization_subscriptions", {
        "id": "s1", "organization_id": "org-1", "status": "active",
        "current_month_receipts": 98, "current_user_count": 3, "plan": STARTER,
    })
    service = SubscriptionService(stub.client(), signed_in_context(), NoopNotifier())

    await service.load_subscription()

    assert service.is_paid_plan()
    receipts = service.can_upload_receipt()
    assert (receipts.allowed, receipts.remaining, receipts.limit) == (True, 2, 100)
    users = service.can_add_user()
    assert (users.allowed, users.remaining, users.limit) == (False, 0, 3)


@pytest.mark.asyncio
async def test_plans_are_cached_until_invalidated() -> None:
    stub = GatewayStub().on("GET", "/rest/v1/subscription_plans", [STARTER])
    service = SubscriptionService(stub.client(), signed_in_context(), NoopNotifier())

    await service.get_plans()
    await service.get_plans()
    assert len(stub.calls) == 1

    service.invalidate_plans_cache()
    await service.get_plans()
    assert len(stub.calls) == 2


@pytest.mark.asyncio
async def test_checkout_goes_through_billing_function() -> None:
    stub = GatewayStub().on("POST", "/functions/v1/stripe-billing", {"url": "https://pay.example/s", "session_id": "cs_1"})
    service = SubscriptionService(stub.client(), signed_in_context(), NoopNotifier())

    session = await service.create_checkout_session("p-starter", "annual")

    assert session.url == "https://pay.example/s"
    assert body(stub.calls[0]) == {
        "action": "create_checkout_session",
        "organization_id": "org-1",
        "plan_id": "p-starter",
        "billing_cycle": "annual",
    }
