"""
Unit tests for subscription and usage domain models.
"""

from datetime import datetime, timezone

from packages.billing.models.domain.enums import (
    QuotaField,
    SubscriptionStatus,
    SubscriptionTier,
)
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionUpdateModel,
)
from packages.billing.models.domain.usage import UsageCheck, UsageSummary

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _subscription(**kwargs) -> Subscription:
    defaults = {
        "id": 1,
        "user_id": 1,
        "tier": SubscriptionTier.MAGIC_CIRCLE,
        "status": SubscriptionStatus.ACTIVE,
        "stripe_subscription_id": "sub_123",
        "current_period_start": datetime(2026, 10, 5),
        "created_at": NOW,
        "updated_at": NOW,
    }
    defaults.update(kwargs)
    return Subscription(**defaults)


class TestSubscription:
    def test_naive_datetimes_become_utc(self):
        subscription = _subscription()
        assert subscription.current_period_start.tzinfo == timezone.utc

    def test_entitled_tier_follows_status(self):
        assert _subscription().entitled_tier() == SubscriptionTier.MAGIC_CIRCLE
        assert (
            _subscription(status=SubscriptionStatus.PAST_DUE).entitled_tier()
            == SubscriptionTier.FREE
        )
        assert (
            _subscription(status=SubscriptionStatus.CANCELED).entitled_tier()
            == SubscriptionTier.FREE
        )
        assert (
            _subscription(status=SubscriptionStatus.INCOMPLETE).entitled_tier()
            == SubscriptionTier.FREE
        )

    def test_usage_anchor(self):
        assert _subscription().usage_anchor() == datetime(2026, 10, 5, tzinfo=timezone.utc)
        assert _subscription(stripe_subscription_id=None).usage_anchor() is None

    def test_legacy_statuses_are_canonicalized(self):
        assert _subscription(status="premium").status == SubscriptionStatus.ACTIVE
        assert _subscription(status="trial").status == SubscriptionStatus.TRIALING
        assert _subscription(status="free").status == SubscriptionStatus.CANCELED
        assert _subscription(status="past_due").status == SubscriptionStatus.PAST_DUE


class TestSubscriptionUpdateModel:
    def test_enums_are_stored_as_values(self):
        update = SubscriptionUpdateModel(
            tier=SubscriptionTier.DREAM_WEAVER, status=SubscriptionStatus.PAST_DUE
        )
        assert update.model_dump(exclude_unset=True) == {
            "tier": "dream_weaver",
            "status": "past_due",
        }

    def test_reset_to_free_clears_paid_fields(self):
        data = SubscriptionUpdateModel.reset_to_free().model_dump(exclude_unset=True)
        assert data["tier"] == "free"
        assert data["status"] == "canceled"
        assert data["stripe_subscription_id"] is None
        assert data["scheduled_tier"] is None
        assert data["cancel_at_period_end"] is False
        # The customer is kept for the next checkout
        assert "stripe_customer_id" not in data


class TestUsageCheck:
    def test_denial_messages(self):
        story = UsageCheck(
            field=QuotaField.MONTHLY_STORIES, allowed=False, limit=3, current=3, remaining=0
        )
        voice = UsageCheck(
            field=QuotaField.MONTHLY_PREMIUM_VOICES,
            allowed=False,
            limit=15,
            current=15,
            remaining=0,
        )
        assert story.get_user_message() == "Monthly story limit reached (3/3)"
        assert voice.get_user_message() == "Monthly premium voice limit reached (15/15)"

    def test_allowed_has_no_message(self):
        check = UsageCheck(
            field=QuotaField.MONTHLY_STORIES, allowed=True, limit=3, current=1, remaining=2
        )
        assert check.get_user_message() is None


class TestUsageSummary:
    def test_remaining_never_negative(self):
        summary = UsageSummary(
            user_id=1,
            tier=SubscriptionTier.FREE,
            stories_used=5,
            stories_limit=3,
            voices_used=0,
            voices_limit=0,
            period_start=NOW,
            period_end=NOW,
        )
        assert summary.stories_remaining == 0
        assert summary.model_dump()["voices_remaining"] == 0
