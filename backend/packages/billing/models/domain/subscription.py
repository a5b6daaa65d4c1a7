"""
Domain models for subscriptions.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, field_validator

from packages.billing.models.domain.enums import (
    BillingPeriod,
    SubscriptionStatus,
    SubscriptionTier,
    map_legacy_status,
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on DateTime(timezone=True) columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Subscription(BaseModel):
    """
    User subscription domain model.

    Represents a user's plan including:
    - Tier (Free/Dream Weaver/Magic Circle/Enchanted Library)
    - Status (Incomplete/Trialing/Active/Past Due/Canceled)
    - Billing period boundaries reported by Stripe
    - External IDs for Stripe
    - A downgrade scheduled for the end of the period, if any
    """

    id: int
    user_id: int

    tier: SubscriptionTier
    status: SubscriptionStatus
    billing_period: Optional[BillingPeriod] = None

    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    scheduled_tier: Optional[SubscriptionTier] = None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_validator(
        "current_period_start",
        "current_period_end",
        "created_at",
        "updated_at",
        mode="after",
    )
    @classmethod
    def ensure_utc(cls, v):
        return _as_utc(v)

    @field_validator("status", mode="before")
    @classmethod
    def canonical_status(cls, v):
        if isinstance(v, str) and not isinstance(v, SubscriptionStatus):
            return map_legacy_status(v)
        return v

    def has_live_subscription(self) -> bool:
        """True when Stripe holds a subscription we can modify."""
        return self.stripe_subscription_id is not None

    def entitled_tier(self) -> SubscriptionTier:
        """Tier whose limits apply right now. Lapsed subscriptions fall back to free."""
        if self.status.has_paid_access():
            return self.tier
        return SubscriptionTier.FREE

    def usage_anchor(self) -> Optional[datetime]:
        """Billing-period anchor for the usage ledger; None means calendar month."""
        if self.has_live_subscription():
            return self.current_period_start
        return None


class SubscriptionCreateModel(BaseModel):
    """Model for creating a new subscription."""

    user_id: int
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.CANCELED
    billing_period: Optional[BillingPeriod] = None

    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False


class SubscriptionUpdateModel(BaseModel):
    """
    Model for updating a subscription.

    Only fields that are explicitly set are written, so passing None
    clears a column.
    """

    tier: Optional[str] = None
    status: Optional[str] = None
    billing_period: Optional[str] = None

    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    scheduled_tier: Optional[str] = None

    @field_validator("tier", "scheduled_tier", mode="before")
    @classmethod
    def validate_tier(cls, v):
        if isinstance(v, SubscriptionTier):
            return v.value
        return v

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if isinstance(v, SubscriptionStatus):
            return v.value
        return v

    @field_validator("billing_period", mode="before")
    @classmethod
    def validate_billing_period(cls, v):
        if isinstance(v, BillingPeriod):
            return v.value
        return v

    @classmethod
    def reset_to_free(cls) -> "SubscriptionUpdateModel":
        """Fields written when a paid subscription ends."""
        return cls(
            tier=SubscriptionTier.FREE,
            status=SubscriptionStatus.CANCELED,
            billing_period=None,
            stripe_subscription_id=None,
            current_period_end=None,
            cancel_at_period_end=False,
            scheduled_tier=None,
        )
