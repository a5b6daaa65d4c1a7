from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.telemetry import trace_span, get_logger
from common.db.scoped import transaction
from packages.billing.models.domain.subscription import SubscriptionCreateModel
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.users.repositories.user_repository import UserRepository
from packages.users.models.domain.user import User, UserCreateModel, UserUpdateModel

logger = get_logger(__name__)


class UserService:
    """Service for handling user operations."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.user_repo = UserRepository(session_factory)
        self.subscription_repo = SubscriptionRepository(session_factory)

    @trace_span
    async def get_user(self, user_id: int) -> Optional[User]:
        """Get a user by ID."""
        return await self.user_repo.get(user_id)

    @trace_span
    async def get_by_auth_user_id(self, auth_user_id: str) -> Optional[User]:
        return await self.user_repo.get_by_auth_user_id(auth_user_id)

    @trace_span
    async def sync_user(
        self, auth_user_id: str, email: str, full_name: Optional[str] = None
    ) -> User:
        """
        Get or create the user for an authenticated identity.

        New users get their free subscription in the same transaction.
        Returning users have email, name and last login refreshed.
        """
        now = datetime.now(timezone.utc)

        async with transaction(self.session_factory):
            existing = await self.user_repo.get_by_auth_user_id(auth_user_id)
            if existing:
                return await self._refresh(existing, email, full_name, now)

            logger.info(f"Creating user for auth id: {auth_user_id}")
            user = await self.user_repo.create_if_absent(
                UserCreateModel(
                    auth_user_id=auth_user_id, email=email, full_name=full_name
                )
            )
            if user is None:
                # Lost the insert race; the winner also created the subscription
                existing = await self.user_repo.get_by_auth_user_id(auth_user_id)
                return await self._refresh(existing, email, full_name, now)

            await self.subscription_repo.create(SubscriptionCreateModel(user_id=user.id))

        logger.info(
            f"Created user with ID: {user.id}",
            extra={"user_id": user.id, "auth_user_id": auth_user_id},
        )
        return user

    async def _refresh(
        self, user: User, email: str, full_name: Optional[str], now: datetime
    ) -> User:
        update_data = UserUpdateModel(last_login_at=now)
        if user.email != email:
            update_data.email = email
        if full_name and user.full_name != full_name:
            update_data.full_name = full_name
        return await self.user_repo.update(user.id, update_data)
