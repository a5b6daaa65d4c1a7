"""
Unit tests for SubscriptionRepository.
"""

import pytest
from sqlalchemy import update

from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.enums import SubscriptionStatus, SubscriptionTier
from packages.billing.models.domain.subscription import SubscriptionUpdateModel
from packages.billing.repositories.subscription_repository import SubscriptionRepository


@pytest.fixture
def subscription_repo(test_session_factory):
    return SubscriptionRepository(test_session_factory)


@pytest.mark.asyncio
class TestSubscriptionRepository:
    async def test_get_by_user_id(self, subscription_repo, sample_subscription):
        subscription = await subscription_repo.get_by_user_id(sample_subscription.user_id)

        assert subscription.id == sample_subscription.id
        assert subscription.tier == SubscriptionTier.MAGIC_CIRCLE

    async def test_get_by_user_id_missing(self, subscription_repo):
        assert await subscription_repo.get_by_user_id(99999) is None

    async def test_get_by_stripe_customer_id(self, subscription_repo, sample_subscription):
        subscription = await subscription_repo.get_by_stripe_customer_id("cus_test123")
        assert subscription.user_id == sample_subscription.user_id

    async def test_update_status(self, subscription_repo, sample_subscription):
        updated = await subscription_repo.update(
            sample_subscription.id,
            SubscriptionUpdateModel(status=SubscriptionStatus.PAST_DUE),
        )

        assert updated.status == SubscriptionStatus.PAST_DUE
        assert updated.tier == SubscriptionTier.MAGIC_CIRCLE

    async def test_update_missing(self, subscription_repo):
        result = await subscription_repo.update(
            99999, SubscriptionUpdateModel(status=SubscriptionStatus.PAST_DUE)
        )
        assert result is None

    async def test_reset_to_free_keeps_customer(self, subscription_repo, sample_subscription):
        updated = await subscription_repo.update(
            sample_subscription.id, SubscriptionUpdateModel.reset_to_free()
        )

        assert updated.tier == SubscriptionTier.FREE
        assert updated.status == SubscriptionStatus.CANCELED
        assert updated.stripe_subscription_id is None
        assert updated.stripe_customer_id == "cus_test123"

    async def test_legacy_status_reads_as_canonical(
        self, subscription_repo, test_db, sample_subscription
    ):
        await test_db.execute(
            update(SubscriptionEntity)
            .where(SubscriptionEntity.id == sample_subscription.id)
            .values(status="premium")
        )
        await test_db.commit()

        subscription = await subscription_repo.get(sample_subscription.id)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.entitled_tier() == SubscriptionTier.MAGIC_CIRCLE
