"""
Stripe implementation of payment provider.
"""

import json
from typing import Any, Dict, Optional
import stripe

from common.core.telemetry import trace_span, get_logger
from packages.billing.models.domain.stripe_webhooks import StripeSubscriptionData
from packages.billing.providers.payment.interface import PaymentProviderInterface

logger = get_logger(__name__)


class StripePaymentProvider(PaymentProviderInterface):
    """
    Stripe-based payment implementation.

    The API key is passed on every request instead of being set on the
    stripe module, so several providers can coexist (e.g. in tests).
    """

    def __init__(self, api_key: str, webhook_secret: str = ""):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    @staticmethod
    def _to_subscription_data(subscription) -> StripeSubscriptionData:
        return StripeSubscriptionData.model_validate(subscription.to_dict())

    @trace_span
    async def retrieve_subscription(self, subscription_id: str) -> StripeSubscriptionData:
        try:
            subscription = stripe.Subscription.retrieve(
                subscription_id, api_key=self.api_key
            )
            return self._to_subscription_data(subscription)

        except stripe.StripeError as e:
            logger.error(
                f"Failed to retrieve subscription: {str(e)}",
                extra={"subscription_id": subscription_id, "error": str(e)},
            )
            raise

    @trace_span
    async def update_subscription_price(
        self,
        subscription_id: str,
        price_id: str,
        prorate: bool,
        metadata: Optional[Dict[str, str]] = None,
    ) -> StripeSubscriptionData:
        """
        Move an existing subscription to a new price.

        Upgrades are prorated; downgrades are not, so the customer keeps
        what they paid for until the period ends.
        """
        try:
            current = await self.retrieve_subscription(subscription_id)

            subscription = stripe.Subscription.modify(
                subscription_id,
                api_key=self.api_key,
                items=[
                    {
                        "id": current.item_id,
                        "price": price_id,
                    }
                ],
                metadata=metadata or {},
                proration_behavior="create_prorations" if prorate else "none",
            )

            logger.info(
                "Updated Stripe subscription price",
                extra={
                    "subscription_id": subscription_id,
                    "price_id": price_id,
                    "prorate": prorate,
                },
            )

            return self._to_subscription_data(subscription)

        except stripe.StripeError as e:
            logger.error(
                f"Failed to update subscription price: {str(e)}",
                extra={"subscription_id": subscription_id, "error": str(e)},
            )
            raise

    @trace_span
    async def set_cancel_at_period_end(
        self, subscription_id: str, cancel_at_period_end: bool
    ) -> StripeSubscriptionData:
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                api_key=self.api_key,
                cancel_at_period_end=cancel_at_period_end,
            )

            logger.info(
                "Updated Stripe cancel_at_period_end",
                extra={
                    "subscription_id": subscription_id,
                    "cancel_at_period_end": cancel_at_period_end,
                },
            )

            return self._to_subscription_data(subscription)

        except stripe.StripeError as e:
            logger.error(
                f"Failed to update cancel_at_period_end: {str(e)}",
                extra={"subscription_id": subscription_id, "error": str(e)},
            )
            raise

    @trace_span
    async def cancel_subscription(self, subscription_id: str) -> None:
        """Cancel Stripe subscription immediately."""
        try:
            stripe.Subscription.cancel(subscription_id, api_key=self.api_key)

            logger.info(
                "Cancelled Stripe subscription",
                extra={"subscription_id": subscription_id},
            )

        except stripe.StripeError as e:
            logger.error(
                f"Failed to cancel subscription: {str(e)}",
                extra={"subscription_id": subscription_id, "error": str(e)},
            )
            raise

    @trace_span
    async def create_customer(self, email: str, metadata: Dict[str, str]) -> str:
        """Create a Stripe customer."""
        try:
            customer = stripe.Customer.create(
                api_key=self.api_key,
                email=email,
                metadata=metadata,
            )

            logger.info(
                "Created Stripe customer",
                extra={"customer_id": customer.id, **metadata},
            )

            return customer.id

        except stripe.StripeError as e:
            logger.error(
                f"Failed to create Stripe customer: {str(e)}",
                extra={"error": str(e), **metadata},
            )
            raise

    @trace_span
    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> str:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                line_items=[
                    {
                        "price": price_id,
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                subscription_data={"metadata": metadata},
                allow_promotion_codes=True,
            )

            logger.info(
                "Created Stripe checkout session",
                extra={
                    "customer_id": customer_id,
                    "price_id": price_id,
                    "session_id": session.id,
                },
            )

            return session.url

        except stripe.StripeError as e:
            logger.error(
                f"Failed to create checkout session: {str(e)}",
                extra={"customer_id": customer_id, "error": str(e)},
            )
            raise

    @trace_span
    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Create Stripe customer portal session."""
        try:
            session = stripe.billing_portal.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                return_url=return_url,
            )

            logger.info(
                "Created Stripe portal session", extra={"customer_id": customer_id}
            )

            return session.url

        except stripe.StripeError as e:
            logger.error(
                f"Failed to create portal session: {str(e)}",
                extra={"customer_id": customer_id, "error": str(e)},
            )
            raise

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the stripe-signature header and decode the event.

        Without a webhook secret (local development only) events are trusted
        as sent. Raises stripe.SignatureVerificationError on a bad signature.
        """
        if not self.webhook_secret:
            logger.warning("Stripe webhook secret not set, skipping signature check")
            return json.loads(payload)

        event = stripe.Webhook.construct_event(
            payload, signature or "", self.webhook_secret
        )
        return event.to_dict()

    @trace_span
    async def health_check(self) -> bool:
        """Check Stripe health."""
        try:
            stripe.Account.retrieve(api_key=self.api_key)
            return True
        except stripe.StripeError as e:
            logger.error(f"Payment health check failed: {e}")
            return False
