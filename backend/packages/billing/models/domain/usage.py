"""
Domain models for usage tracking and quotas.
"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, computed_field

from packages.billing.models.domain.enums import QuotaField, SubscriptionTier


class BillingPeriodWindow(BaseModel):
    """Inclusive [start, end] window over which quotas accumulate, in UTC."""

    start: datetime
    end: datetime

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()


class UsageRecord(BaseModel):
    """Counters for one user in one billing period."""

    id: int
    user_id: int
    billing_period_start: date
    billing_period_end: date
    stories_generated: int = 0
    premium_voices_used: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UsageCheck(BaseModel):
    """
    Result of checking one quota field against a usage count.

    remaining is None when the quota is unlimited.
    """

    field: QuotaField
    allowed: bool
    limit: int
    current: int
    remaining: Optional[int]
    unlimited: bool = False

    def get_user_message(self) -> Optional[str]:
        """Denial text naming the exact limit, e.g. "Monthly story limit reached (3/3)"."""
        if self.allowed:
            return None
        if self.field == QuotaField.MONTHLY_STORIES:
            return f"Monthly story limit reached ({self.limit}/{self.limit})"
        if self.field == QuotaField.MONTHLY_PREMIUM_VOICES:
            return f"Monthly premium voice limit reached ({self.limit}/{self.limit})"
        if self.field == QuotaField.MAX_CHILDREN:
            return f"Child profile limit reached ({self.current}/{self.limit})"
        return f"Saved story limit reached ({self.current}/{self.limit})"


class UsageDecision(BaseModel):
    """
    Entitlement decision for a story generation request.

    A denial is an expected outcome, not an error: reason and the checks
    carry what the caller needs to render an upgrade prompt.
    """

    allowed: bool
    reason: Optional[str] = None
    story_check: UsageCheck
    voice_check: Optional[UsageCheck] = None


class UsageSummary(BaseModel):
    """Usage of the current period next to the entitled tier's limits."""

    user_id: int
    tier: SubscriptionTier
    stories_used: int
    stories_limit: int
    voices_used: int
    voices_limit: int
    period_start: datetime
    period_end: datetime

    @computed_field
    @property
    def stories_remaining(self) -> int:
        return max(0, self.stories_limit - self.stories_used)

    @computed_field
    @property
    def voices_remaining(self) -> int:
        return max(0, self.voices_limit - self.voices_used)
