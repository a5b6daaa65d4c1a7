"""
Unit tests for UserService.

Database interactions are NOT mocked.
"""

import pytest
from unittest.mock import patch

from packages.billing.models.domain.enums import SubscriptionStatus, SubscriptionTier
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.users.models.domain.user import UserCreateModel
from packages.users.services.user_service import UserService


@pytest.fixture
def user_service(test_session_factory):
    return UserService(test_session_factory)


@pytest.mark.asyncio
class TestSyncUser:
    async def test_new_user_gets_free_subscription(
        self, user_service, test_session_factory
    ):
        user = await user_service.sync_user("auth_new", "new@example.com", "New Parent")

        assert user.id is not None
        assert user.auth_user_id == "auth_new"
        subscription = await SubscriptionRepository(test_session_factory).get_by_user_id(
            user.id
        )
        assert subscription.tier == SubscriptionTier.FREE
        assert subscription.status == SubscriptionStatus.CANCELED
        assert subscription.stripe_subscription_id is None

    async def test_returning_user_is_updated(self, user_service, sample_user_entity):
        user = await user_service.sync_user("auth_parent_1", "renamed@example.com")

        assert user.id == sample_user_entity.id
        assert user.email == "renamed@example.com"
        assert user.full_name == "Test Parent"
        assert user.last_login_at is not None

    async def test_sync_is_idempotent(self, user_service):
        first = await user_service.sync_user("auth_new", "new@example.com")
        second = await user_service.sync_user("auth_new", "new@example.com")

        assert first.id == second.id

    async def test_lookups(self, user_service, sample_user_entity):
        assert (await user_service.get_user(sample_user_entity.id)).email == (
            "parent@example.com"
        )
        assert (
            await user_service.get_by_auth_user_id("auth_parent_1")
        ).id == sample_user_entity.id
        assert await user_service.get_by_auth_user_id("auth_missing") is None

    async def test_concurrent_first_sync_reuses_winner(
        self, user_service, test_session_factory, sample_user_entity
    ):
        # Both requests missed the lookup; this one inserts second
        real_lookup = user_service.user_repo.get_by_auth_user_id
        lookups = []

        async def stale_then_real(auth_user_id):
            lookups.append(auth_user_id)
            if len(lookups) == 1:
                return None
            return await real_lookup(auth_user_id)

        with patch.object(
            user_service.user_repo, "get_by_auth_user_id", side_effect=stale_then_real
        ):
            user = await user_service.sync_user("auth_parent_1", "parent@example.com")

        assert user.id == sample_user_entity.id
        assert len(lookups) == 2
        # The loser must not add a second subscription for the winner
        subscription = await SubscriptionRepository(test_session_factory).get_by_user_id(
            sample_user_entity.id
        )
        assert subscription is None

    async def test_create_if_absent_on_duplicate(self, user_service, sample_user_entity):
        duplicate = await user_service.user_repo.create_if_absent(
            UserCreateModel(auth_user_id="auth_parent_1", email="other@example.com")
        )

        assert duplicate is None
        assert (await user_service.get_by_auth_user_id("auth_parent_1")).email == (
            "parent@example.com"
        )
