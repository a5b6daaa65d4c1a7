"""
Usage ledger: per-user, per-billing-period counters.
"""

import calendar
from typing import Optional
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.telemetry import trace_span, get_logger
from packages.billing.repositories.usage_repository import UsageRecordRepository
from packages.billing.models.domain.enums import BillingErrorCode
from packages.billing.models.domain.results import BillingOperationResult
from packages.billing.models.domain.usage import BillingPeriodWindow, UsageRecord

logger = get_logger(__name__)


def _anchored_start(year: int, month: int, day: int) -> datetime:
    """Midnight UTC on `day` of the month, clamped to the month's last day."""
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day, last_day), tzinfo=timezone.utc)


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def get_current_billing_period(
    anchor: Optional[datetime] = None, now: Optional[datetime] = None
) -> BillingPeriodWindow:
    """
    Billing period containing `now`.

    With an anchor (the subscription's period start) periods run from the
    anchor's day-of-month to the day before it in the next month; day 31
    anchors clamp to shorter months without drifting. Without an anchor the
    period is the UTC calendar month. The end is the last second of the period.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    if anchor is None:
        start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
        last_day = calendar.monthrange(now.year, now.month)[1]
        end = datetime(now.year, now.month, last_day, 23, 59, 59, tzinfo=timezone.utc)
        return BillingPeriodWindow(start=start, end=end)

    if anchor.tzinfo is not None:
        anchor = anchor.astimezone(timezone.utc)
    anchor_day = anchor.day

    year, month = now.year, now.month
    start = _anchored_start(year, month, anchor_day)
    if start > now:
        year, month = _shift_month(year, month, -1)
        start = _anchored_start(year, month, anchor_day)

    next_year, next_month = _shift_month(year, month, 1)
    next_start = _anchored_start(next_year, next_month, anchor_day)
    return BillingPeriodWindow(start=start, end=next_start - timedelta(seconds=1))


class UsageService:
    """Service for usage ledger reads and increments."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.usage_repo = UsageRecordRepository(session_factory)

    @trace_span
    async def get_current_usage(
        self,
        user_id: int,
        anchor: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> UsageRecord:
        """Usage for the current period. Creates a zeroed record on first access."""
        window = get_current_billing_period(anchor, now)
        return await self.usage_repo.get_or_create(user_id, window)

    @trace_span
    async def track_story_generation(
        self,
        user_id: int,
        used_premium_voice: bool = False,
        anchor: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> UsageRecord:
        """
        Record one generated story (and one premium voice use if requested).

        Safe under concurrent calls for the same user and period.
        """
        window = get_current_billing_period(anchor, now)
        record = await self.usage_repo.increment(
            user_id,
            window,
            stories=1,
            premium_voices=1 if used_premium_voice else 0,
        )

        logger.info(
            f"Tracked story generation for user {user_id}",
            extra={
                "user_id": user_id,
                "used_premium_voice": used_premium_voice,
                "period_start": window.start_date.isoformat(),
                "stories_generated": record.stories_generated,
                "premium_voices_used": record.premium_voices_used,
            },
        )
        return record

    @trace_span
    async def reset_usage(self, user_id: int) -> BillingOperationResult:
        """Delete all usage history for a user. Administrative use only."""
        deleted = await self.usage_repo.delete_for_user(user_id)
        if deleted == 0:
            return BillingOperationResult.failure(
                "No usage records to reset", BillingErrorCode.NOT_FOUND
            )

        logger.info(
            f"Reset usage for user {user_id}",
            extra={"user_id": user_id, "deleted_records": deleted},
        )
        return BillingOperationResult.ok(f"Deleted {deleted} usage record(s)")
