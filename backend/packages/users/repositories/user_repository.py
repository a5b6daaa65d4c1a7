from typing import Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.repositories.base import BaseRepository
from common.core.telemetry import trace_span, get_logger
from packages.users.models.database.user import UserEntity
from packages.users.models.domain.user import User, UserCreateModel

logger = get_logger(__name__)


class UserRepository(BaseRepository[UserEntity, User]):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(UserEntity, User, session_factory)

    @trace_span
    async def get_by_auth_user_id(self, auth_user_id: str) -> Optional[User]:
        """Get user by the auth provider's user id."""
        async with self._get_session() as session:
            result = await session.execute(
                select(UserEntity)
                .where(UserEntity.auth_user_id == auth_user_id)
                .execution_options(populate_existing=True)
            )
            db_user = result.scalar_one_or_none()
            return self._entity_to_domain(db_user) if db_user else None

    @trace_span
    async def create_if_absent(self, create_model: UserCreateModel) -> Optional[User]:
        """
        Insert a user inside a savepoint.

        Returns None when another request already inserted the same
        auth_user_id; the enclosing transaction stays usable.
        """
        db_obj = UserEntity(**create_model.model_dump(exclude_none=True))
        async with self._get_session() as session:
            try:
                async with session.begin_nested():
                    session.add(db_obj)
                    await session.flush()
            except IntegrityError:
                logger.debug(
                    "User created concurrently",
                    extra={"auth_user_id": create_model.auth_user_id},
                )
                return None
            await session.refresh(db_obj)
            return self._entity_to_domain(db_obj)
