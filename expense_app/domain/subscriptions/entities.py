from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from expense_app.domain.rows import from_row

BillingCycle = Literal["monthly", "annual"]
SubscriptionStatus = Literal["active", "trialing", "past_due", "canceled", "unpaid", "paused"]

FREE_PLAN = "free"


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    name: str = FREE_PLAN
    display_name: str = ""
    description: Optional[str] = None
    monthly_price_cents: int = 0
    annual_price_cents: int = 0
    min_users: int = 1
    max_users: Optional[int] = None
    features: dict[str, Any] = field(default_factory=dict)
    stripe_product_id: Optional[str] = None
    stripe_monthly_price_id: Optional[str] = None
    stripe_annual_price_id: Optional[str] = None
    display_order: int = 0
    is_public: bool = True
    is_active: bool = True

    @property
    def receipts_per_month(self) -> Optional[int]:
        return self.features.get("receipts_per_month")


@dataclass(frozen=True)
class OrganizationSubscription:
    id: str
    organization_id: Optional[str] = None
    plan_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    status: str = "active"
    billing_cycle: Optional[str] = None
    current_period_start: Optional[str] = None
    current_period_end: Optional[str] = None
    trial_start: Optional[str] = None
    trial_end: Optional[str] = None
    canceled_at: Optional[str] = None
    cancel_at_period_end: bool = False
    current_user_count: int = 0
    current_month_receipts: int = 0
    discount_percent: Optional[float] = None
    discount_expires_at: Optional[str] = None
    billing_email: Optional[str] = None
    plan: Optional[SubscriptionPlan] = None

    def __post_init__(self) -> None:
        if isinstance(self.plan, dict):
            object.__setattr__(self, "plan", from_row(SubscriptionPlan, self.plan))


@dataclass(frozen=True)
class SubscriptionInvoice:
    id: str
    organization_id: Optional[str] = None
    subscription_id: Optional[str] = None
    stripe_invoice_id: Optional[str] = None
    amount_cents: int = 0
    amount_paid_cents: int = 0
    amount_refunded_cents: int = 0
    currency: str = "usd"
    status: str = "draft"
    description: Optional[str] = None
    line_items: Optional[list[dict[str, Any]]] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    paid_at: Optional[str] = None
    invoice_pdf_url: Optional[str] = None
    hosted_invoice_url: Optional[str] = None


@dataclass(frozen=True)
class UsageLimits:
    """Plan limits against current usage. A ``None`` limit means unlimited."""

    receipt_limit: Optional[int]
    receipts_used: int
    receipts_remaining: Optional[int]
    user_limit: Optional[int]
    users_current: int
    at_user_limit: bool
    at_receipt_limit: bool


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    remaining: Optional[int] = None
    limit: Optional[int] = None


@dataclass(frozen=True)
class CheckoutSession:
    url: str
    session_id: Optional[str] = None
