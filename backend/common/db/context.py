"""
Database session context management.

Holds the session of the enclosing transaction() block, if any, so that
repositories called inside it share one session and commit together.

Usage:
    # In repositories - auto-manages sessions
    async with get_session(session_factory) as session:
        result = await session.execute(query)

    # Explicit transaction - multiple ops share one session
    async with transaction(session_factory):
        await subscription_repo.update(...)
        await usage_repo.increment(...)  # Same session, commits together
"""

from contextvars import ContextVar
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession


# =============================================================================
# Context Variables
# =============================================================================

# Holds the current session (if inside a transaction)
_current_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_session", default=None
)


# =============================================================================
# Context Accessors
# =============================================================================


def get_current_session() -> Optional[AsyncSession]:
    """Get the current session from context, if any."""
    return _current_session.get()


def set_current_session(session: AsyncSession) -> object:
    """
    Set session in context.

    Returns:
        Token for resetting the context variable
    """
    return _current_session.set(session)


def reset_current_session(token: object) -> None:
    """Reset session context using token from set_current_session."""
    _current_session.reset(token)


def in_transaction() -> bool:
    """Check if we're currently inside a transaction."""
    return get_current_session() is not None
