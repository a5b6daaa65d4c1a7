"""
Service for managing user subscriptions.

Management calls (change, cancel, reactivate) talk to Stripe first and
only then write to the database, so a provider failure leaves stored
state untouched. Stripe errors propagate unchanged.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.exceptions import ValidationError
from common.core.telemetry import trace_span, get_logger
from packages.billing.exceptions import SubscriptionNotFoundError
from packages.billing.models.domain.enums import (
    BillingErrorCode,
    BillingPeriod,
    SubscriptionStatus,
    SubscriptionTier,
)
from packages.billing.models.domain.results import BillingOperationResult
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
    SubscriptionUpdateModel,
)
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.tiers import PriceCatalog, is_downgrade, is_upgrade

logger = get_logger(__name__)


class SubscriptionService:
    """Service for subscription management."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        payment_provider: PaymentProviderInterface,
        price_catalog: PriceCatalog,
    ):
        self.subscription_repo = SubscriptionRepository(session_factory)
        self.payment_provider = payment_provider
        self.price_catalog = price_catalog

    @trace_span
    async def get_user_subscription(self, user_id: int) -> Optional[Subscription]:
        return await self.subscription_repo.get_by_user_id(user_id)

    @trace_span
    async def create_default_subscription(self, user_id: int) -> Subscription:
        """Create the free subscription every user starts with. Idempotent."""
        existing = await self.subscription_repo.get_by_user_id(user_id)
        if existing:
            return existing

        subscription = await self.subscription_repo.create(
            SubscriptionCreateModel(user_id=user_id)
        )

        logger.info(
            f"Created default subscription for user {user_id}",
            extra={"user_id": user_id, "subscription_id": subscription.id},
        )
        return subscription

    @trace_span
    async def change_subscription(
        self,
        user_id: int,
        new_tier: SubscriptionTier,
        billing_period: BillingPeriod = BillingPeriod.MONTHLY,
    ) -> BillingOperationResult:
        """
        Move a live subscription to another tier or billing period.

        - free: cancel at period end, access kept until then
        - upgrade: prorated, stored tier changes immediately
        - downgrade: no proration, recorded as scheduled_tier and applied by
          the subscription.updated webhook once a new period starts
        """
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if not subscription:
            return BillingOperationResult.failure(
                "No subscription found", BillingErrorCode.NO_SUBSCRIPTION
            )

        if new_tier == SubscriptionTier.FREE:
            return await self.cancel_subscription(user_id, immediate=False)

        if not subscription.has_live_subscription():
            return BillingOperationResult.failure(
                "Cannot change tier without active subscription. Please create a new subscription.",
                BillingErrorCode.NO_ACTIVE_SUBSCRIPTION,
            )

        same_plan = (
            new_tier == subscription.tier
            and billing_period == subscription.billing_period
        )
        if same_plan and subscription.scheduled_tier is None:
            return BillingOperationResult.failure(
                "Already on this plan", BillingErrorCode.ALREADY_ON_PLAN
            )

        price_id = self.price_catalog.price_id_for(new_tier, billing_period)
        upgrade = is_upgrade(subscription.tier, new_tier)

        await self.payment_provider.update_subscription_price(
            subscription.stripe_subscription_id,
            price_id,
            prorate=upgrade,
            metadata={
                "user_id": str(user_id),
                "tier": new_tier.value,
                "billing_period": billing_period.value,
            },
        )

        log_extra = {
            "user_id": user_id,
            "subscription_id": subscription.stripe_subscription_id,
            "old_tier": subscription.tier.value,
            "new_tier": new_tier.value,
            "billing_period": billing_period.value,
        }

        if upgrade:
            await self.subscription_repo.update(
                subscription.id,
                SubscriptionUpdateModel(
                    tier=new_tier, billing_period=billing_period, scheduled_tier=None
                ),
            )
            logger.info(f"Upgraded subscription for user {user_id}", extra=log_extra)
            return BillingOperationResult.ok("Subscription upgraded successfully")

        if is_downgrade(subscription.tier, new_tier):
            await self.subscription_repo.update(
                subscription.id,
                SubscriptionUpdateModel(
                    billing_period=billing_period, scheduled_tier=new_tier
                ),
            )
            logger.info(
                f"Scheduled downgrade for user {user_id}", extra=log_extra
            )
            return BillingOperationResult.ok(
                "Subscription will be downgraded at the end of the billing period"
            )

        # Same tier: either a cadence switch or undoing a scheduled downgrade
        await self.subscription_repo.update(
            subscription.id,
            SubscriptionUpdateModel(billing_period=billing_period, scheduled_tier=None),
        )
        logger.info(f"Updated plan for user {user_id}", extra=log_extra)
        return BillingOperationResult.ok("Subscription updated successfully")

    @trace_span
    async def cancel_subscription(
        self, user_id: int, immediate: bool = False
    ) -> BillingOperationResult:
        """
        Cancel the live subscription.

        immediate=True cancels in Stripe and resets the stored subscription
        to free right away. Otherwise only cancel_at_period_end is set and
        the stored tier is left for the subscription.deleted webhook.
        """
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if not subscription:
            return BillingOperationResult.failure(
                "No subscription found", BillingErrorCode.NO_SUBSCRIPTION
            )
        if not subscription.has_live_subscription():
            return BillingOperationResult.failure(
                "No active subscription to cancel",
                BillingErrorCode.NO_ACTIVE_SUBSCRIPTION,
            )

        log_extra = {
            "user_id": user_id,
            "subscription_id": subscription.stripe_subscription_id,
            "tier": subscription.tier.value,
            "immediate": immediate,
        }

        if immediate:
            await self.payment_provider.cancel_subscription(
                subscription.stripe_subscription_id
            )
            await self.subscription_repo.update(
                subscription.id, SubscriptionUpdateModel.reset_to_free()
            )
            logger.info(f"Canceled subscription for user {user_id}", extra=log_extra)
            return BillingOperationResult.ok("Subscription canceled immediately")

        await self.payment_provider.set_cancel_at_period_end(
            subscription.stripe_subscription_id, True
        )
        await self.subscription_repo.update(
            subscription.id, SubscriptionUpdateModel(cancel_at_period_end=True)
        )
        logger.info(
            f"Subscription for user {user_id} set to cancel at period end",
            extra=log_extra,
        )
        return BillingOperationResult.ok(
            "Subscription will be canceled at the end of the billing period"
        )

    @trace_span
    async def reactivate_subscription(self, user_id: int) -> BillingOperationResult:
        """Undo a pending cancel-at-period-end. Tier and status are unchanged."""
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if not subscription or not subscription.has_live_subscription():
            return BillingOperationResult.failure(
                "No subscription to reactivate", BillingErrorCode.NO_SUBSCRIPTION
            )

        await self.payment_provider.set_cancel_at_period_end(
            subscription.stripe_subscription_id, False
        )
        await self.subscription_repo.update(
            subscription.id, SubscriptionUpdateModel(cancel_at_period_end=False)
        )

        logger.info(
            f"Reactivated subscription for user {user_id}",
            extra={
                "user_id": user_id,
                "subscription_id": subscription.stripe_subscription_id,
            },
        )
        return BillingOperationResult.ok("Subscription reactivated successfully")

    @trace_span
    async def create_checkout_session(
        self,
        user_id: int,
        auth_user_id: str,
        email: str,
        tier: SubscriptionTier,
        billing_period: BillingPeriod,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Start a Stripe checkout for a paid tier and return its URL.

        The Stripe customer is created on first checkout and reused after.
        The subscription itself is stored by the checkout.session.completed
        webhook, not here.
        """
        if tier == SubscriptionTier.FREE:
            raise ValidationError("The free tier does not require checkout")

        price_id = self.price_catalog.price_id_for(tier, billing_period)

        subscription = await self.create_default_subscription(user_id)
        if (
            subscription.has_live_subscription()
            and subscription.status != SubscriptionStatus.CANCELED
        ):
            # past_due included: payment is fixed in the portal, not a second subscription
            raise ValidationError(
                "A subscription already exists. Change plans or update payment instead."
            )

        customer_id = subscription.stripe_customer_id
        if not customer_id:
            customer_id = await self.payment_provider.create_customer(
                email=email,
                metadata={"user_id": str(user_id), "auth_user_id": auth_user_id},
            )
            await self.subscription_repo.update(
                subscription.id,
                SubscriptionUpdateModel(stripe_customer_id=customer_id),
            )

        url = await self.payment_provider.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={
                "user_id": str(user_id),
                "auth_user_id": auth_user_id,
                "tier": tier.value,
                "billing_period": billing_period.value,
            },
        )

        logger.info(
            f"Created checkout session for user {user_id}",
            extra={
                "user_id": user_id,
                "customer_id": customer_id,
                "tier": tier.value,
                "billing_period": billing_period.value,
            },
        )
        return url

    @trace_span
    async def create_portal_session(self, user_id: int, return_url: str) -> str:
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if not subscription or not subscription.stripe_customer_id:
            raise SubscriptionNotFoundError("No billing account found")

        return await self.payment_provider.create_portal_session(
            subscription.stripe_customer_id, return_url
        )
