"""
Unit tests for operation-scoped sessions and explicit transactions.
"""

import pytest
from sqlalchemy import select

from common.db.context import get_current_session, in_transaction
from common.db.scoped import get_session, transaction
from packages.users.models.database.user import UserEntity


@pytest.mark.asyncio
class TestTransaction:
    async def test_commits_on_success(self, test_session_factory):
        async with transaction(test_session_factory) as session:
            session.add(UserEntity(auth_user_id="auth_tx", email="tx@example.com"))

        async with get_session(test_session_factory) as session:
            result = await session.execute(
                select(UserEntity).where(UserEntity.auth_user_id == "auth_tx")
            )
            assert result.scalar_one_or_none() is not None

    async def test_rolls_back_on_error(self, test_session_factory):
        with pytest.raises(RuntimeError):
            async with transaction(test_session_factory) as session:
                session.add(
                    UserEntity(auth_user_id="auth_rollback", email="rb@example.com")
                )
                await session.flush()
                raise RuntimeError("boom")

        async with get_session(test_session_factory) as session:
            result = await session.execute(
                select(UserEntity).where(UserEntity.auth_user_id == "auth_rollback")
            )
            assert result.scalar_one_or_none() is None

    async def test_nested_blocks_share_session(self, test_session_factory):
        async with transaction(test_session_factory) as outer:
            assert in_transaction()
            async with transaction(test_session_factory) as inner:
                assert inner is outer
            async with get_session(test_session_factory) as operation:
                assert operation is outer

        assert get_current_session() is None
