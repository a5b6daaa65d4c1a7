"""
API schemas for billing operations.

Request and response models for billing endpoints.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, HttpUrl

from packages.billing.models.domain.enums import (
    BillingErrorCode,
    BillingPeriod,
    SubscriptionStatus,
    SubscriptionTier,
)


# ============================================================================
# Checkout Schemas
# ============================================================================


class CheckoutSessionRequest(BaseModel):
    """Request to create a checkout session."""

    tier: SubscriptionTier
    billing_period: BillingPeriod = BillingPeriod.MONTHLY
    success_url: HttpUrl
    cancel_url: HttpUrl


class CheckoutSessionResponse(BaseModel):
    """Response with checkout URL."""

    checkout_url: str = Field(..., description="Stripe checkout session URL")


# ============================================================================
# Portal Schemas
# ============================================================================


class PortalSessionRequest(BaseModel):
    """Request to create a customer portal session."""

    return_url: HttpUrl


class PortalSessionResponse(BaseModel):
    """Response with portal URL."""

    portal_url: str = Field(..., description="Stripe customer portal URL")


# ============================================================================
# Subscription Schemas
# ============================================================================


class SubscriptionStatusResponse(BaseModel):
    """Current subscription state of the caller."""

    tier: SubscriptionTier
    entitled_tier: SubscriptionTier = Field(
        ..., description="Tier whose limits currently apply"
    )
    status: SubscriptionStatus
    billing_period: Optional[BillingPeriod] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool
    scheduled_tier: Optional[SubscriptionTier] = None


class ChangeSubscriptionRequest(BaseModel):
    tier: SubscriptionTier
    billing_period: BillingPeriod = BillingPeriod.MONTHLY


class CancelSubscriptionRequest(BaseModel):
    immediate: bool = False


class BillingOperationResponse(BaseModel):
    """Outcome of a change, cancel or reactivate call."""

    success: bool
    message: str
    error_code: Optional[BillingErrorCode] = None
