from typing import Any, Dict

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from common.core.config import Settings
from common.core.telemetry import get_logger

logger = get_logger(__name__)


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the async engine from settings. Called once at application startup."""
    url = settings.database_url
    engine_kwargs: Dict[str, Any] = {
        "echo": settings.debug,
        "pool_pre_ping": True,
    }

    if url.startswith("postgresql"):
        logger.info(
            f"Using connection pooling - pool_size={settings.db_pool_size}, max_overflow={settings.db_pool_overflow}"
        )
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_pool_overflow
        engine_kwargs["pool_recycle"] = 3600

    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency: the session factory built at startup."""
    return request.app.state.session_factory
