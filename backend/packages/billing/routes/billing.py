"""
Billing API routes.

Protected endpoints for subscription and usage management.
"""

from fastapi import APIRouter, Depends, Response, status

from packages.auth.dependencies import get_current_active_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.billing.dependencies import (
    get_entitlement_service,
    get_subscription_service,
)
from packages.billing.exceptions import SubscriptionNotFoundError
from packages.billing.models.domain.enums import BillingErrorCode
from packages.billing.models.domain.results import BillingOperationResult
from packages.billing.models.domain.usage import UsageSummary
from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.models.schemas.billing import (
    BillingOperationResponse,
    CancelSubscriptionRequest,
    ChangeSubscriptionRequest,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    PortalSessionRequest,
    PortalSessionResponse,
    SubscriptionStatusResponse,
)

router = APIRouter()


def _operation_response(
    result: BillingOperationResult, response: Response
) -> BillingOperationResponse:
    if not result.success:
        response.status_code = (
            status.HTTP_404_NOT_FOUND
            if result.error_code == BillingErrorCode.NO_SUBSCRIPTION
            else status.HTTP_409_CONFLICT
        )
    return BillingOperationResponse(**result.model_dump())


# ============================================================================
# Subscription Status
# ============================================================================


@router.get("/subscription", response_model=SubscriptionStatusResponse)
async def get_subscription(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Get the caller's subscription, tier and billing period."""
    subscription = await subscription_service.get_user_subscription(
        current_user.user_id
    )
    if not subscription:
        raise SubscriptionNotFoundError("No subscription found")

    return SubscriptionStatusResponse(
        tier=subscription.tier,
        entitled_tier=subscription.entitled_tier(),
        status=subscription.status,
        billing_period=subscription.billing_period,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
        scheduled_tier=subscription.scheduled_tier,
    )


# ============================================================================
# Usage
# ============================================================================


@router.get("/usage", response_model=UsageSummary)
async def get_usage(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    """Stories and premium voices used this period against the tier's limits."""
    return await entitlement_service.get_usage_summary(current_user.user_id)


# ============================================================================
# Checkout & Portal
# ============================================================================


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CheckoutSessionRequest,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Create a Stripe checkout session for a paid tier.

    The subscription is stored when Stripe confirms the checkout via webhook.
    """
    checkout_url = await subscription_service.create_checkout_session(
        user_id=current_user.user_id,
        auth_user_id=current_user.auth_user_id,
        email=current_user.email,
        tier=request.tier,
        billing_period=request.billing_period,
        success_url=str(request.success_url),
        cancel_url=str(request.cancel_url),
    )
    return CheckoutSessionResponse(checkout_url=checkout_url)


@router.post("/portal", response_model=PortalSessionResponse)
async def create_portal_session(
    request: PortalSessionRequest,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Create a Stripe customer portal session for payment method and invoices."""
    portal_url = await subscription_service.create_portal_session(
        current_user.user_id, str(request.return_url)
    )
    return PortalSessionResponse(portal_url=portal_url)


# ============================================================================
# Plan Management
# ============================================================================


@router.post("/change", response_model=BillingOperationResponse)
async def change_subscription(
    request: ChangeSubscriptionRequest,
    response: Response,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Change tier or billing period of the live subscription.

    Upgrades apply immediately; downgrades at the end of the period.
    """
    result = await subscription_service.change_subscription(
        current_user.user_id, request.tier, request.billing_period
    )
    return _operation_response(result, response)


@router.post("/cancel", response_model=BillingOperationResponse)
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    response: Response,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    result = await subscription_service.cancel_subscription(
        current_user.user_id, immediate=request.immediate
    )
    return _operation_response(result, response)


@router.post("/reactivate", response_model=BillingOperationResponse)
async def reactivate_subscription(
    response: Response,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    result = await subscription_service.reactivate_subscription(current_user.user_id)
    return _operation_response(result, response)
