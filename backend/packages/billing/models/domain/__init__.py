"""Domain models for billing."""

from packages.billing.models.domain.enums import (
    BillingErrorCode,
    BillingPeriod,
    QuotaField,
    SubscriptionStatus,
    SubscriptionTier,
    TierFeature,
)
from packages.billing.models.domain.results import BillingOperationResult
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
    SubscriptionUpdateModel,
)
from packages.billing.models.domain.tiers import TierInfo, TierLimits
from packages.billing.models.domain.usage import (
    BillingPeriodWindow,
    UsageCheck,
    UsageDecision,
    UsageRecord,
    UsageSummary,
)

__all__ = [
    # Enums
    "BillingErrorCode",
    "BillingPeriod",
    "QuotaField",
    "SubscriptionStatus",
    "SubscriptionTier",
    "TierFeature",
    # Results
    "BillingOperationResult",
    # Subscription
    "Subscription",
    "SubscriptionCreateModel",
    "SubscriptionUpdateModel",
    # Tiers
    "TierInfo",
    "TierLimits",
    # Usage
    "BillingPeriodWindow",
    "UsageCheck",
    "UsageDecision",
    "UsageRecord",
    "UsageSummary",
]
