"""
Repository for subscription management.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.repositories.base import BaseRepository
from common.core.telemetry import trace_span
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.subscription import Subscription


class SubscriptionRepository(BaseRepository[SubscriptionEntity, Subscription]):
    """Repository for managing subscriptions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(SubscriptionEntity, Subscription, session_factory)

    async def _get_one(self, *conditions) -> Optional[Subscription]:
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity)
                .where(*conditions)
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_by_user_id(self, user_id: int) -> Optional[Subscription]:
        """Get subscription for a user."""
        return await self._get_one(SubscriptionEntity.user_id == user_id)

    @trace_span
    async def get_by_stripe_customer_id(
        self, stripe_customer_id: str
    ) -> Optional[Subscription]:
        """Get subscription by Stripe customer ID (webhooks carry no user context)."""
        return await self._get_one(
            SubscriptionEntity.stripe_customer_id == stripe_customer_id
        )
