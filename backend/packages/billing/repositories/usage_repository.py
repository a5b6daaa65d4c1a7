"""
Repository for per-period usage records.
"""

from datetime import date
from typing import Optional
from sqlalchemy import select, delete, update, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.constants import USAGE_UPSERT_MAX_ATTEMPTS
from common.core.telemetry import trace_span, get_logger
from common.repositories.base import BaseRepository
from packages.billing.models.database.usage import UsageRecordEntity
from packages.billing.models.domain.usage import BillingPeriodWindow, UsageRecord

logger = get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class UsageRecordRepository(BaseRepository[UsageRecordEntity, UsageRecord]):
    """
    Repository for usage records.

    Counters are only changed through atomic statements: an
    INSERT ... ON CONFLICT upsert where the dialect supports it, otherwise
    a savepoint-guarded update-or-insert retried on unique violations.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(UsageRecordEntity, UsageRecord, session_factory)

    def _insert_for(self, session: AsyncSession):
        """Dialect insert construct with on_conflict support, or None."""
        return _UPSERT_DIALECTS.get(session.get_bind().dialect.name)

    async def _select_period(
        self, session: AsyncSession, user_id: int, period_start: date
    ) -> Optional[UsageRecordEntity]:
        result = await session.execute(
            select(UsageRecordEntity)
            .where(
                UsageRecordEntity.user_id == user_id,
                UsageRecordEntity.billing_period_start == period_start,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @trace_span
    async def get_for_period(
        self, user_id: int, period_start: date
    ) -> Optional[UsageRecord]:
        async with self._get_session() as session:
            entity = await self._select_period(session, user_id, period_start)
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_or_create(
        self, user_id: int, window: BillingPeriodWindow
    ) -> UsageRecord:
        """Return the record for the window, inserting a zeroed one if absent."""
        async with self._get_session() as session:
            insert_fn = self._insert_for(session)
            if insert_fn is not None:
                stmt = (
                    insert_fn(UsageRecordEntity)
                    .values(
                        user_id=user_id,
                        billing_period_start=window.start_date,
                        billing_period_end=window.end_date,
                        stories_generated=0,
                        premium_voices_used=0,
                    )
                    .on_conflict_do_nothing(
                        index_elements=["user_id", "billing_period_start"]
                    )
                )
                await session.execute(stmt)
            else:
                existing = await self._select_period(
                    session, user_id, window.start_date
                )
                if existing is None:
                    try:
                        async with session.begin_nested():
                            session.add(
                                UsageRecordEntity(
                                    user_id=user_id,
                                    billing_period_start=window.start_date,
                                    billing_period_end=window.end_date,
                                    stories_generated=0,
                                    premium_voices_used=0,
                                )
                            )
                            await session.flush()
                    except IntegrityError:
                        # A concurrent request created it first
                        logger.debug(
                            "Usage record created concurrently",
                            extra={"user_id": user_id},
                        )

            entity = await self._select_period(session, user_id, window.start_date)
            return self._entity_to_domain(entity)

    @trace_span
    async def increment(
        self,
        user_id: int,
        window: BillingPeriodWindow,
        stories: int = 1,
        premium_voices: int = 0,
    ) -> UsageRecord:
        """Atomically add to the window's counters, creating the record if needed."""
        async with self._get_session() as session:
            insert_fn = self._insert_for(session)
            if insert_fn is not None:
                stmt = insert_fn(UsageRecordEntity).values(
                    user_id=user_id,
                    billing_period_start=window.start_date,
                    billing_period_end=window.end_date,
                    stories_generated=stories,
                    premium_voices_used=premium_voices,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["user_id", "billing_period_start"],
                    set_={
                        "stories_generated": UsageRecordEntity.stories_generated
                        + stmt.excluded.stories_generated,
                        "premium_voices_used": UsageRecordEntity.premium_voices_used
                        + stmt.excluded.premium_voices_used,
                        "updated_at": func.now(),
                    },
                )
                await session.execute(stmt)
            else:
                await self._increment_with_retry(
                    session, user_id, window, stories, premium_voices
                )

            entity = await self._select_period(session, user_id, window.start_date)
            return self._entity_to_domain(entity)

    async def _increment_with_retry(
        self,
        session: AsyncSession,
        user_id: int,
        window: BillingPeriodWindow,
        stories: int,
        premium_voices: int,
    ) -> None:
        for attempt in range(1, USAGE_UPSERT_MAX_ATTEMPTS + 1):
            try:
                async with session.begin_nested():
                    result = await session.execute(
                        update(UsageRecordEntity)
                        .where(
                            UsageRecordEntity.user_id == user_id,
                            UsageRecordEntity.billing_period_start == window.start_date,
                        )
                        .values(
                            stories_generated=UsageRecordEntity.stories_generated
                            + stories,
                            premium_voices_used=UsageRecordEntity.premium_voices_used
                            + premium_voices,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        session.add(
                            UsageRecordEntity(
                                user_id=user_id,
                                billing_period_start=window.start_date,
                                billing_period_end=window.end_date,
                                stories_generated=stories,
                                premium_voices_used=premium_voices,
                            )
                        )
                        await session.flush()
                return
            except IntegrityError:
                logger.warning(
                    f"Usage insert conflicted, retrying ({attempt}/{USAGE_UPSERT_MAX_ATTEMPTS})",
                    extra={"user_id": user_id, "attempt": attempt},
                )
                if attempt == USAGE_UPSERT_MAX_ATTEMPTS:
                    raise

    @trace_span
    async def delete_for_user(self, user_id: int) -> int:
        """Delete every usage record of a user. Returns the number of rows removed."""
        async with self._get_session() as session:
            result = await session.execute(
                delete(UsageRecordEntity).where(UsageRecordEntity.user_id == user_id)
            )
            await session.flush()
            return result.rowcount
