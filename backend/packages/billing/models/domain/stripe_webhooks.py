"""
Domain models for Stripe webhook payloads.

Strongly-typed Pydantic models for the Stripe objects the subscription
state manager reads. Unknown fields are ignored.
"""

from datetime import datetime, timezone
from typing import Optional, Any, List
from enum import Enum
from pydantic import BaseModel, Field, model_validator


class StripeWebhookType(str, Enum):
    """Stripe webhook event types we handle."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class StripeSubscriptionStatus(str, Enum):
    """Stripe subscription status values."""

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Stripe sends unix seconds."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class StripeMetadata(BaseModel):
    """Stripe metadata (we store the internal user linkage here)."""

    user_id: Optional[str] = None
    auth_user_id: Optional[str] = None
    tier: Optional[str] = None
    billing_period: Optional[str] = None


class StripePrice(BaseModel):
    id: str
    recurring: Optional[dict[str, Any]] = None


class StripeSubscriptionItem(BaseModel):
    id: str
    price: StripePrice
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeSubscriptionItems(BaseModel):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscriptionData(BaseModel):
    """
    Stripe subscription object.

    Newer API versions report the period on the subscription item rather
    than the subscription itself; both shapes are accepted.
    """

    id: str
    customer: str
    status: StripeSubscriptionStatus
    items: StripeSubscriptionItems = Field(default_factory=StripeSubscriptionItems)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[int] = None
    trial_start: Optional[int] = None
    trial_end: Optional[int] = None
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)

    @model_validator(mode="after")
    def fill_period_from_item(self):
        if self.items.data:
            item = self.items.data[0]
            if self.current_period_start is None:
                self.current_period_start = item.current_period_start
            if self.current_period_end is None:
                self.current_period_end = item.current_period_end
        return self

    @property
    def price_id(self) -> Optional[str]:
        if not self.items.data:
            return None
        return self.items.data[0].price.id

    @property
    def item_id(self) -> Optional[str]:
        if not self.items.data:
            return None
        return self.items.data[0].id

    @property
    def period_start(self) -> Optional[datetime]:
        return from_timestamp(self.current_period_start)

    @property
    def period_end(self) -> Optional[datetime]:
        return from_timestamp(self.current_period_end)


class StripeInvoiceData(BaseModel):
    """Stripe invoice object."""

    id: str
    customer: str
    subscription: Optional[str] = None
    status: Optional[str] = None
    amount_due: int = 0
    amount_paid: int = 0
    currency: Optional[str] = None
    attempt_count: int = 0
    parent: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def fill_subscription_from_parent(self):
        # Newer API versions nest the subscription under parent.subscription_details
        if self.subscription is None and self.parent:
            details = self.parent.get("subscription_details") or {}
            self.subscription = details.get("subscription")
        return self


class StripeCheckoutSessionData(BaseModel):
    """Stripe checkout session object."""

    id: str
    mode: str = "subscription"
    customer: Optional[str] = None
    subscription: Optional[str] = None
    client_reference_id: Optional[str] = None
    payment_status: Optional[str] = None
    status: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)


class StripeEventData(BaseModel):
    """Stripe event data wrapper."""

    object: dict[str, Any]  # The actual object (subscription, invoice, checkout session)


class StripeWebhookPayload(BaseModel):
    """Complete Stripe webhook payload."""

    id: str
    type: str  # Unhandled types are acknowledged, so not constrained to StripeWebhookType
    data: StripeEventData
    created: int
    livemode: bool = False
