"""
Webhook endpoints for billing events.

Public endpoints (no auth required) for Stripe webhooks.
"""

from fastapi import APIRouter, Depends, Request

from packages.billing.dependencies import get_payment_provider, get_stripe_event_handler
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.webhooks.stripe_webhook import (
    StripeEventHandler,
    handle_stripe_webhook,
)

router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    handler: StripeEventHandler = Depends(get_stripe_event_handler),
    payment_provider: PaymentProviderInterface = Depends(get_payment_provider),
) -> dict[str, str]:
    """
    Receive webhook events from Stripe payment platform.

    No authentication required - webhook signature validated by the provider.
    """
    return await handle_stripe_webhook(request, handler, payment_provider)
