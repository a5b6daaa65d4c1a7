from typing import Annotated, Optional
from fastapi import Depends, HTTPException, status, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.telemetry import get_logger
from common.db.session import get_session_factory
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.users.services.user_service import UserService

logger = get_logger(__name__)


def get_user_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> UserService:
    return UserService(session_factory)


async def get_current_active_user(
    x_auth_user_id: Annotated[Optional[str], Header()] = None,
    x_auth_user_email: Annotated[Optional[str], Header()] = None,
    user_service: UserService = Depends(get_user_service),
) -> AuthenticatedUser:
    """
    Resolve the caller from identity headers set by the auth gateway.

    Session handling happens upstream; this only maps the verified identity
    to our user row, creating it (and its free subscription) on first sight.
    """
    if not x_auth_user_id or not x_auth_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    user = await user_service.sync_user(x_auth_user_id, x_auth_user_email)
    return AuthenticatedUser(
        user_id=user.id, auth_user_id=user.auth_user_id, email=user.email
    )
