"""
Entitlement evaluation: quota checks and the story generation gate.
"""

from typing import Awaitable, Callable, Optional, TypeVar
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.constants import UNLIMITED
from common.core.telemetry import trace_span, get_logger
from packages.billing.exceptions import QuotaExceededError, SubscriptionNotFoundError
from packages.billing.models.domain.enums import QuotaField, SubscriptionTier
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.usage import (
    UsageCheck,
    UsageDecision,
    UsageSummary,
)
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.usage_service import (
    UsageService,
    get_current_billing_period,
)
from packages.billing.tiers import get_quota_limit, get_tier_limits

logger = get_logger(__name__)

T = TypeVar("T")


def check_quota(tier: SubscriptionTier, current: int, field: QuotaField) -> UsageCheck:
    """
    Compare a usage count against one of the tier's quotas.

    UNLIMITED is always allowed and reports remaining=None. A limit of 0
    is a hard cap.
    """
    limit = get_quota_limit(tier, field)
    if limit == UNLIMITED:
        return UsageCheck(
            field=field,
            allowed=True,
            limit=limit,
            current=current,
            remaining=None,
            unlimited=True,
        )
    return UsageCheck(
        field=field,
        allowed=current < limit,
        limit=limit,
        current=current,
        remaining=max(0, limit - current),
    )


def check_story_limit(tier: SubscriptionTier, current: int) -> UsageCheck:
    return check_quota(tier, current, QuotaField.MONTHLY_STORIES)


def check_premium_voice_limit(tier: SubscriptionTier, current: int) -> UsageCheck:
    return check_quota(tier, current, QuotaField.MONTHLY_PREMIUM_VOICES)


def check_children_limit(tier: SubscriptionTier, current: int) -> UsageCheck:
    return check_quota(tier, current, QuotaField.MAX_CHILDREN)


def check_saved_stories_limit(tier: SubscriptionTier, current: int) -> UsageCheck:
    return check_quota(tier, current, QuotaField.MAX_SAVED_STORIES)


class EntitlementService:
    """Decides whether a user may generate a story and records usage afterwards."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        usage_service: Optional[UsageService] = None,
    ):
        self.usage_service = usage_service or UsageService(session_factory)
        self.subscription_repo = SubscriptionRepository(session_factory)

    async def _require_subscription(self, user_id: int) -> Subscription:
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if subscription is None:
            raise SubscriptionNotFoundError(f"No subscription for user {user_id}")
        return subscription

    @trace_span
    async def can_generate_story(
        self,
        user_id: int,
        tier: SubscriptionTier,
        wants_premium_voice: bool = False,
        anchor: Optional[datetime] = None,
    ) -> UsageDecision:
        usage = await self.usage_service.get_current_usage(user_id, anchor)

        story_check = check_story_limit(tier, usage.stories_generated)
        if not story_check.allowed:
            return UsageDecision(
                allowed=False,
                reason=story_check.get_user_message(),
                story_check=story_check,
            )

        if not wants_premium_voice:
            return UsageDecision(allowed=True, story_check=story_check)

        voice_check = check_premium_voice_limit(tier, usage.premium_voices_used)
        if not voice_check.allowed:
            return UsageDecision(
                allowed=False,
                reason=voice_check.get_user_message(),
                story_check=story_check,
                voice_check=voice_check,
            )

        return UsageDecision(
            allowed=True, story_check=story_check, voice_check=voice_check
        )

    @trace_span
    async def check_user_can_generate_story(
        self, user_id: int, wants_premium_voice: bool = False
    ) -> UsageDecision:
        """can_generate_story with tier and period taken from the stored subscription."""
        subscription = await self._require_subscription(user_id)
        return await self.can_generate_story(
            user_id,
            subscription.entitled_tier(),
            wants_premium_voice,
            subscription.usage_anchor(),
        )

    @trace_span
    async def generate_story(
        self,
        user_id: int,
        wants_premium_voice: bool,
        action: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run a metered action behind the entitlement gate.

        Usage is recorded only after `action` completes. If it raises or is
        cancelled nothing is charged. Denials raise QuotaExceededError
        without calling `action`.
        """
        subscription = await self._require_subscription(user_id)
        tier = subscription.entitled_tier()
        anchor = subscription.usage_anchor()

        decision = await self.can_generate_story(
            user_id, tier, wants_premium_voice, anchor
        )
        if not decision.allowed:
            logger.info(
                f"Story generation denied for user {user_id}: {decision.reason}",
                extra={"user_id": user_id, "tier": tier.value},
            )
            raise QuotaExceededError(decision)

        result = await action()

        await self.usage_service.track_story_generation(
            user_id, used_premium_voice=wants_premium_voice, anchor=anchor
        )
        return result

    @trace_span
    async def get_usage_summary(self, user_id: int) -> UsageSummary:
        subscription = await self._require_subscription(user_id)
        tier = subscription.entitled_tier()
        anchor = subscription.usage_anchor()

        usage = await self.usage_service.get_current_usage(user_id, anchor)
        window = get_current_billing_period(anchor)
        limits = get_tier_limits(tier)

        return UsageSummary(
            user_id=user_id,
            tier=tier,
            stories_used=usage.stories_generated,
            stories_limit=limits.monthly_stories,
            voices_used=usage.premium_voices_used,
            voices_limit=limits.monthly_premium_voices,
            period_start=window.start,
            period_end=window.end,
        )
