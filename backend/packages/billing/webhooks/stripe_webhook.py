"""
Stripe webhook handler for subscription lifecycle events.

Handles events from Stripe payment platform:
- Checkout session completion
- Subscription updates and deletion
- Invoice payment success/failure

Every handler recomputes the target state from the event (and the live
subscription where needed) and overwrites the stored row, so replayed or
duplicated deliveries converge on the same state. Events that cannot be
applied raise instead of being dropped, so Stripe retries them.
"""

from typing import Optional, Type, TypeVar

import stripe
from fastapi import Request, HTTPException, status
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.telemetry import trace_span, get_logger, log_span_event
from common.db.scoped import transaction
from packages.billing.exceptions import SubscriptionNotFoundError, WebhookPayloadError
from packages.billing.models.domain.enums import (
    BillingPeriod,
    SubscriptionStatus,
    SubscriptionTier,
)
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
    SubscriptionUpdateModel,
)
from packages.billing.models.domain.stripe_webhooks import (
    StripeCheckoutSessionData,
    StripeInvoiceData,
    StripeMetadata,
    StripeSubscriptionData,
    StripeSubscriptionStatus,
    StripeWebhookPayload,
    StripeWebhookType,
)
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.tiers import PriceCatalog
from packages.users.repositories.user_repository import UserRepository

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


_STATUS_MAP = {
    StripeSubscriptionStatus.ACTIVE: SubscriptionStatus.ACTIVE,
    StripeSubscriptionStatus.TRIALING: SubscriptionStatus.TRIALING,
    StripeSubscriptionStatus.PAST_DUE: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.UNPAID: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.PAUSED: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.INCOMPLETE: SubscriptionStatus.INCOMPLETE,
    StripeSubscriptionStatus.INCOMPLETE_EXPIRED: SubscriptionStatus.CANCELED,
    StripeSubscriptionStatus.CANCELED: SubscriptionStatus.CANCELED,
}


def map_stripe_status(stripe_status: StripeSubscriptionStatus) -> SubscriptionStatus:
    """Map Stripe subscription status to our canonical status."""
    return _STATUS_MAP[stripe_status]


def _parse(model: Type[ModelT], data: dict) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise WebhookPayloadError(
            f"Invalid {model.__name__} payload: {e.error_count()} error(s)"
        ) from e


class StripeEventHandler:
    """Applies Stripe events to stored subscriptions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        payment_provider: PaymentProviderInterface,
        price_catalog: PriceCatalog,
    ):
        self.session_factory = session_factory
        self.subscription_repo = SubscriptionRepository(session_factory)
        self.user_repo = UserRepository(session_factory)
        self.payment_provider = payment_provider
        self.price_catalog = price_catalog

    @trace_span
    async def handle_event(self, payload: StripeWebhookPayload) -> None:
        """Route an event to its handler. Unhandled types are acknowledged."""
        data = payload.data.object

        if payload.type == StripeWebhookType.CHECKOUT_SESSION_COMPLETED:
            await self.on_checkout_completed(data)
        elif payload.type == StripeWebhookType.SUBSCRIPTION_UPDATED:
            await self.on_subscription_updated(data)
        elif payload.type == StripeWebhookType.SUBSCRIPTION_DELETED:
            await self.on_subscription_deleted(data)
        elif payload.type in (
            StripeWebhookType.INVOICE_PAID,
            StripeWebhookType.INVOICE_PAYMENT_SUCCEEDED,
        ):
            await self.on_payment_succeeded(data)
        elif payload.type == StripeWebhookType.INVOICE_PAYMENT_FAILED:
            await self.on_payment_failed(data)
        else:
            logger.info(f"Unhandled Stripe webhook type: {payload.type}")

    async def _resolve_user_id(self, metadata: StripeMetadata, session_id: str) -> int:
        if metadata.user_id:
            try:
                user_id = int(metadata.user_id)
            except ValueError:
                raise WebhookPayloadError(
                    f"Checkout session {session_id} has a malformed user_id"
                ) from None
            if await self.user_repo.get(user_id) is None:
                raise WebhookPayloadError(
                    f"Checkout session {session_id} references unknown user {user_id}"
                )
            return user_id

        if metadata.auth_user_id:
            user = await self.user_repo.get_by_auth_user_id(metadata.auth_user_id)
            if user is None:
                raise WebhookPayloadError(
                    f"Checkout session {session_id} references unknown user"
                )
            return user.id

        raise WebhookPayloadError(
            f"Checkout session {session_id} has no user linkage in metadata"
        )

    def _resolve_plan(
        self, stripe_sub: StripeSubscriptionData
    ) -> tuple[SubscriptionTier, BillingPeriod]:
        if not stripe_sub.price_id:
            raise WebhookPayloadError(f"Subscription {stripe_sub.id} has no price")
        return self.price_catalog.tier_for_price(stripe_sub.price_id)

    async def _get_by_customer(self, customer_id: str) -> Subscription:
        subscription = await self.subscription_repo.get_by_stripe_customer_id(
            customer_id
        )
        if subscription is None:
            raise SubscriptionNotFoundError(
                f"No subscription for Stripe customer {customer_id}"
            )
        return subscription

    @trace_span
    async def on_checkout_completed(self, data: dict) -> Optional[Subscription]:
        """
        Store a newly purchased subscription.

        The tier comes from the live subscription's price, not from checkout
        metadata, so a tampered or stale metadata tier cannot grant access.
        """
        session = _parse(StripeCheckoutSessionData, data)

        if session.mode != "subscription":
            logger.info(
                f"Ignoring checkout session in {session.mode} mode",
                extra={"session_id": session.id},
            )
            return None

        user_id = await self._resolve_user_id(session.metadata, session.id)
        if not session.customer or not session.subscription:
            raise WebhookPayloadError(
                f"Checkout session {session.id} is missing customer or subscription"
            )

        stripe_sub = await self.payment_provider.retrieve_subscription(
            session.subscription
        )
        tier, billing_period = self._resolve_plan(stripe_sub)
        new_status = (
            SubscriptionStatus.TRIALING
            if stripe_sub.status == StripeSubscriptionStatus.TRIALING
            else SubscriptionStatus.ACTIVE
        )

        update_data = SubscriptionUpdateModel(
            tier=tier,
            status=new_status,
            billing_period=billing_period,
            stripe_customer_id=session.customer,
            stripe_subscription_id=stripe_sub.id,
            current_period_start=stripe_sub.period_start,
            current_period_end=stripe_sub.period_end,
            cancel_at_period_end=stripe_sub.cancel_at_period_end,
            scheduled_tier=None,
        )

        async with transaction(self.session_factory):
            subscription = await self.subscription_repo.get_by_user_id(user_id)
            if subscription is None:
                subscription = await self.subscription_repo.create(
                    SubscriptionCreateModel(user_id=user_id)
                )
            updated = await self.subscription_repo.update(subscription.id, update_data)

        log_span_event(
            "Checkout completed",
            {
                "user_id": user_id,
                "customer_id": session.customer,
                "subscription_id": stripe_sub.id,
                "tier": tier.value,
                "status": new_status.value,
            },
        )
        return updated

    @trace_span
    async def on_subscription_updated(self, data: dict) -> Subscription:
        stripe_sub = _parse(StripeSubscriptionData, data)
        return await self._apply_subscription_state(stripe_sub)

    async def _apply_subscription_state(
        self, stripe_sub: StripeSubscriptionData
    ) -> Subscription:
        """
        Overwrite the stored subscription with Stripe's view of it.

        A downgrade scheduled by change_subscription keeps the stored tier
        until Stripe reports a period start different from the stored one.
        """
        subscription = await self._get_by_customer(stripe_sub.customer)
        tier, billing_period = self._resolve_plan(stripe_sub)
        new_status = map_stripe_status(stripe_sub.status)

        stored_tier = tier
        scheduled_tier = None
        if (
            subscription.scheduled_tier is not None
            and subscription.scheduled_tier == tier
            and subscription.current_period_start == stripe_sub.period_start
        ):
            stored_tier = subscription.tier
            scheduled_tier = subscription.scheduled_tier

        updated = await self.subscription_repo.update(
            subscription.id,
            SubscriptionUpdateModel(
                tier=stored_tier,
                status=new_status,
                billing_period=billing_period,
                stripe_subscription_id=stripe_sub.id,
                current_period_start=stripe_sub.period_start,
                current_period_end=stripe_sub.period_end,
                cancel_at_period_end=stripe_sub.cancel_at_period_end,
                scheduled_tier=scheduled_tier,
            ),
        )

        logger.info(
            f"Applied Stripe subscription state for user {subscription.user_id}",
            extra={
                "user_id": subscription.user_id,
                "customer_id": stripe_sub.customer,
                "subscription_id": stripe_sub.id,
                "old_tier": subscription.tier.value,
                "new_tier": stored_tier.value,
                "scheduled_tier": scheduled_tier.value if scheduled_tier else None,
                "old_status": subscription.status.value,
                "new_status": new_status.value,
            },
        )
        return updated

    @trace_span
    async def on_subscription_deleted(self, data: dict) -> Subscription:
        """Return the user to free. Replays leave the same state."""
        stripe_sub = _parse(StripeSubscriptionData, data)
        subscription = await self._get_by_customer(stripe_sub.customer)

        if subscription.stripe_subscription_id not in (None, stripe_sub.id):
            # An older subscription ended after the customer bought a new one
            logger.info(
                "Ignoring deletion of superseded Stripe subscription",
                extra={
                    "user_id": subscription.user_id,
                    "deleted_subscription_id": stripe_sub.id,
                    "current_subscription_id": subscription.stripe_subscription_id,
                },
            )
            return subscription

        updated = await self.subscription_repo.update(
            subscription.id, SubscriptionUpdateModel.reset_to_free()
        )

        logger.info(
            f"Subscription deleted for user {subscription.user_id}",
            extra={
                "user_id": subscription.user_id,
                "customer_id": stripe_sub.customer,
                "subscription_id": stripe_sub.id,
                "old_tier": subscription.tier.value,
            },
        )
        return updated

    @trace_span
    async def on_payment_failed(self, data: dict) -> Optional[Subscription]:
        """Mark the subscription past_due. The tier is left alone."""
        invoice = _parse(StripeInvoiceData, data)
        if not invoice.subscription:
            logger.info(
                "Ignoring failed payment for non-subscription invoice",
                extra={"invoice_id": invoice.id},
            )
            return None

        subscription = await self._get_by_customer(invoice.customer)
        updated = await self.subscription_repo.update(
            subscription.id,
            SubscriptionUpdateModel(status=SubscriptionStatus.PAST_DUE),
        )

        logger.warning(
            f"Payment failed for user {subscription.user_id}",
            extra={
                "user_id": subscription.user_id,
                "customer_id": invoice.customer,
                "invoice_id": invoice.id,
                "attempt_count": invoice.attempt_count,
            },
        )
        return updated

    @trace_span
    async def on_payment_succeeded(self, data: dict) -> Optional[Subscription]:
        """Re-sync the subscription the invoice paid for."""
        invoice = _parse(StripeInvoiceData, data)
        if not invoice.subscription:
            return None

        stripe_sub = await self.payment_provider.retrieve_subscription(
            invoice.subscription
        )
        return await self._apply_subscription_state(stripe_sub)


async def handle_stripe_webhook(
    request: Request,
    handler: StripeEventHandler,
    payment_provider: PaymentProviderInterface,
) -> dict[str, str]:
    """
    Handle incoming webhook from Stripe.

    Validates webhook signature and routes to the event handler. Linkage
    and lookup failures propagate to the app's exception handlers.
    """
    payload_bytes = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = payment_provider.construct_event(payload_bytes, sig_header)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature"
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        )

    try:
        payload = StripeWebhookPayload.model_validate(event)
    except ValidationError as e:
        logger.error(
            "Invalid Stripe webhook payload", extra={"validation_errors": e.errors()}
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        )

    logger.info(
        f"Received Stripe webhook: {payload.type}",
        extra={
            "event_id": payload.id,
            "event_type": payload.type,
            "livemode": payload.livemode,
        },
    )

    await handler.handle_event(payload)
    return {"status": "success"}
