"""
Operation-scoped database sessions.

Sessions are acquired from an injected session factory and released
immediately after each operation, so no connection is held during
calls to Stripe or other external services.

Usage:
    # Single operation - acquires and releases immediately
    async with get_session(session_factory) as session:
        result = await session.get(Model, id)
    # Connection released here

    # Multiple operations in a transaction - share one session
    async with transaction(session_factory):
        await repo.save(thing1)
        await repo.save(thing2)
    # Commits together, then releases
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.telemetry import get_logger
from common.db.context import (
    get_current_session,
    set_current_session,
    reset_current_session,
)

logger = get_logger(__name__)


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Explicit transaction boundary.

    All DB operations inside share one session/connection.
    Commits on success, rolls back on exception.

    Raises:
        Exception: Re-raises any exception after rollback
    """
    existing = get_current_session()
    if existing is not None:
        # Nested transaction() - the outer block owns commit/rollback
        yield existing
        return

    start = time.perf_counter()
    async with session_factory() as session:
        acquire_time = time.perf_counter() - start
        logger.debug(f"Transaction session acquire: {acquire_time * 1000:.2f}ms")

        token = set_current_session(session)
        try:
            yield session
            commit_start = time.perf_counter()
            await session.commit()
            commit_time = time.perf_counter() - commit_start
            logger.debug(f"Transaction commit: {commit_time * 1000:.2f}ms")
        except Exception as e:
            logger.error(f"Transaction rollback due to: {e}")
            await session.rollback()
            raise
        finally:
            reset_current_session(token)


@asynccontextmanager
async def get_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Get a session for a single DB operation.

    This is the primary interface for repositories:
    - Reuses the session if inside a transaction() block
    - Otherwise acquires a new session, auto-commits, and releases immediately
    """
    existing = get_current_session()

    if existing is not None:
        # Inside a transaction - reuse session, don't commit (transaction handles it)
        yield existing
    else:
        start = time.perf_counter()
        async with session_factory() as session:
            acquire_time = time.perf_counter() - start
            logger.debug(f"Operation session acquire: {acquire_time * 1000:.2f}ms")

            try:
                yield session
                await session.commit()
            except Exception as e:
                logger.error(f"Operation rollback due to: {e}")
                await session.rollback()
                raise
