"""Subscription plans, billing actions and usage limits."""
from __future__ import annotations

import math
from typing import Any, Optional

from expense_app.core.errors import GatewayError, RowNotVisibleError
from expense_app.domain.context import SessionContext, StateContainer
from expense_app.domain.notifications import Notifier
from expense_app.domain.rows import from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import GatewayClient, Order, eq
from expense_app.observability.tracing import log_event

from .entities import (
    FREE_PLAN,
    BillingCycle,
    CheckoutSession,
    LimitCheck,
    OrganizationSubscription,
    SubscriptionInvoice,
    SubscriptionPlan,
    UsageLimits,
)

PLANS_TABLE = "subscription_plans"
SUBSCRIPTIONS_TABLE = "organization_subscriptions"
INVOICES_TABLE = "subscription_invoices"
BILLING_FUNCTION = "stripe-billing"


def format_price(cents: int, cycle: BillingCycle = "monthly") -> str:
    suffix = "/year" if cycle == "annual" else "/month"
    return f"${cents / 100:.2f}{suffix}"


def annual_savings(plan: SubscriptionPlan) -> int:
    """Whole-percent discount of annual billing over twelve monthly payments."""
    if plan.monthly_price_cents == 0:
        return 0
    monthly_total = plan.monthly_price_cents * 12
    return math.floor((monthly_total - plan.annual_price_cents) / monthly_total * 100 + 0.5)


def compute_usage_limits(subscription: OrganizationSubscription) -> Optional[UsageLimits]:
    plan = subscription.plan
    if plan is None:
        return None
    receipt_limit = plan.receipts_per_month
    user_limit = plan.max_users
    used = subscription.current_month_receipts
    users = subscription.current_user_count
    return UsageLimits(
        receipt_limit=receipt_limit,
        receipts_used=used,
        receipts_remaining=max(0, receipt_limit - used) if receipt_limit is not None else None,
        user_limit=user_limit,
        users_current=users,
        at_user_limit=user_limit is not None and users >= user_limit,
        at_receipt_limit=receipt_limit is not None and used >= receipt_limit,
    )


class SubscriptionService(DomainService):
    component = "subscriptions"

    def __init__(
        self,
        gateway: GatewayClient,
        context: SessionContext,
        notifier: Optional[Notifier] = None,
    ) -> None:
        super().__init__(gateway, context, notifier)
        self.plans: StateContainer[list[SubscriptionPlan]] = StateContainer()
        self.subscription: StateContainer[OrganizationSubscription] = StateContainer()
        self.usage_limits: StateContainer[UsageLimits] = StateContainer()

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    @gateway_operation("Failed to load plans")
    async def get_plans(self, force_refresh: bool = False) -> list[SubscriptionPlan]:
        cached = self.plans.get()
        if cached is not None and not force_refresh:
            return cached
        rows = await self._gateway.select(
            PLANS_TABLE,
            filters=[eq("is_active", True), eq("is_public", True)],
            order=Order("display_order"),
        )
        plans = from_rows(SubscriptionPlan, rows)
        self.plans.set(plans)
        return plans

    def invalidate_plans_cache(self) -> None:
        self.plans.clear()

    @gateway_operation("Failed to fetch plan")
    async def get_plan(self, plan_id: str) -> SubscriptionPlan:
        row = await self._gateway.select_one(PLANS_TABLE, filters=[eq("id", plan_id)])
        return from_row(SubscriptionPlan, row)

    @gateway_operation("Failed to fetch plan")
    async def get_plan_by_name(self, name: str) -> SubscriptionPlan:
        row = await self._gateway.select_one(PLANS_TABLE, filters=[eq("name", name)])
        return from_row(SubscriptionPlan, row)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    @gateway_operation("Failed to load subscription")
    async def load_subscription(self, organization_id: Optional[str] = None) -> Optional[OrganizationSubscription]:
        """Fetch the organization's subscription and refresh the usage limits.

        An organization without a subscription row yields None.
        """
        organization_id = organization_id or self._context.require_organization_id()
        try:
            row = await self._gateway.select_one(
                SUBSCRIPTIONS_TABLE,
                columns="*, plan:subscription_plans(*)",
                filters=[eq("organization_id", organization_id)],
            )
        except RowNotVisibleError:
            self.subscription.clear()
            self.usage_limits.clear()
            return None

        subscription = from_row(OrganizationSubscription, row)
        self.subscription.set(subscription)
        self.usage_limits.set(compute_usage_limits(subscription))
        return subscription

    @gateway_operation("Failed to fetch invoices")
    async def get_invoices(self, organization_id: Optional[str] = None, limit: int = 10) -> list[SubscriptionInvoice]:
        organization_id = organization_id or self._context.require_organization_id()
        rows = await self._gateway.select(
            INVOICES_TABLE,
            filters=[eq("organization_id", organization_id)],
            order=Order("invoice_date", ascending=False),
            limit=limit,
        )
        return from_rows(SubscriptionInvoice, rows)

    @gateway_operation("Failed to fetch invoice")
    async def get_invoice(self, invoice_id: str) -> SubscriptionInvoice:
        row = await self._gateway.select_one(INVOICES_TABLE, filters=[eq("id", invoice_id)])
        return from_row(SubscriptionInvoice, row)

    # ------------------------------------------------------------------
    # Billing actions
    # ------------------------------------------------------------------

    @gateway_operation("Failed to start checkout", notify=True)
    async def create_checkout_session(self, plan_id: str, billing_cycle: BillingCycle = "monthly") -> CheckoutSession:
        payload = await self._billing(
            "create_checkout_session", plan_id=plan_id, billing_cycle=billing_cycle
        )
        if not payload or not payload.get("url"):
            raise GatewayError("Billing service returned no checkout URL")
        return CheckoutSession(url=payload["url"], session_id=payload.get("session_id"))

    @gateway_operation("Failed to open billing portal", notify=True)
    async def open_customer_portal(self) -> str:
        payload = await self._billing("create_customer_portal")
        if not payload or not payload.get("url"):
            raise GatewayError("Billing service returned no portal URL")
        return payload["url"]

    @gateway_operation("Failed to cancel subscription", notify=True)
    async def cancel_subscription(self) -> None:
        await self._billing("cancel_subscription")
        self._notifier.success("Subscription will be canceled at the end of the billing period")
        await self.load_subscription()

    @gateway_operation("Failed to resume subscription", notify=True)
    async def resume_subscription(self) -> None:
        await self._billing("resume_subscription")
        self._notifier.success("Subscription resumed")
        await self.load_subscription()

    @gateway_operation("Failed to change plan", notify=True)
    async def change_plan(self, new_plan_id: str) -> None:
        await self._billing("change_plan", new_plan_id=new_plan_id)
        self._notifier.success("Plan changed successfully")
        await self.load_subscription()

    @gateway_operation("Failed to apply coupon", notify=True)
    async def apply_coupon(self, coupon_code: str) -> None:
        await self._billing("apply_coupon", coupon_code=coupon_code)
        self._notifier.success("Coupon applied successfully")
        await self.load_subscription()

    async def _billing(self, action: str, **fields: Any) -> Any:
        organization_id = self._context.require_organization_id()
        body = {"action": action, "organization_id": organization_id, **fields}
        log_event("subscriptions.billing_action", component=self.component,
                  action=action, organization_id=organization_id)
        return await self._gateway.invoke_function(BILLING_FUNCTION, body)

    # ------------------------------------------------------------------
    # Limits
    # ------------------------------------------------------------------

    def can_upload_receipt(self) -> LimitCheck:
        limits = self.usage_limits.get()
        if limits is None or limits.receipt_limit is None:
            return LimitCheck(allowed=True)
        return LimitCheck(
            allowed=not limits.at_receipt_limit,
            remaining=limits.receipts_remaining or 0,
            limit=limits.receipt_limit,
        )

    def can_add_user(self) -> LimitCheck:
        limits = self.usage_limits.get()
        if limits is None or limits.user_limit is None:
            return LimitCheck(allowed=True)
        return LimitCheck(
            allowed=not limits.at_user_limit,
            remaining=limits.user_limit - limits.users_current,
            limit=limits.user_limit,
        )

    def current_plan_name(self) -> str:
        subscription = self.subscription.get()
        if subscription and subscription.plan:
            return subscription.plan.name
        return FREE_PLAN

    def is_paid_plan(self) -> bool:
        return self.current_plan_name() != FREE_PLAN
