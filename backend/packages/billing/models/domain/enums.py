"""
Billing enums - strongly typed enumerations for subscription and billing states.
"""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """
    Subscription status lifecycle.

    Flow: incomplete -> trialing/active -> past_due -> canceled

    Only active and trialing grant the stored tier. Every other status,
    past_due included, is entitled to free limits while the tier is kept.
    """

    INCOMPLETE = "incomplete"  # Checkout started, first payment not confirmed
    TRIALING = "trialing"  # In a provider-managed trial
    ACTIVE = "active"  # Subscription is active and paid
    PAST_DUE = "past_due"  # Payment failed or Stripe stopped collecting; free limits apply
    CANCELED = "canceled"  # No paid subscription (also the default for new users)

    def has_paid_access(self) -> bool:
        """Check if this status grants the stored tier's entitlements."""
        return self in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class LegacySubscriptionStatus(str, Enum):
    """Status vocabulary of rows written before the canonical status existed."""

    FREE = "free"
    PREMIUM = "premium"
    TRIAL = "trial"


def map_legacy_status(status: str) -> SubscriptionStatus:
    """
    Migration shim: translate a stored legacy status into the canonical one.

    Canonical values pass through unchanged. Applied when a Subscription is
    loaded, so rows still holding free/premium/trial read as canonical.
    """
    try:
        return SubscriptionStatus(status)
    except ValueError:
        pass

    legacy = LegacySubscriptionStatus(status)
    if legacy == LegacySubscriptionStatus.PREMIUM:
        return SubscriptionStatus.ACTIVE
    if legacy == LegacySubscriptionStatus.TRIAL:
        return SubscriptionStatus.TRIALING
    return SubscriptionStatus.CANCELED


class SubscriptionTier(str, Enum):
    """
    Subscription tiers, in increasing order of capability.

    Maps to Stripe price IDs (one per billing period) via PriceCatalog.
    """

    FREE = "free"
    DREAM_WEAVER = "dream_weaver"
    MAGIC_CIRCLE = "magic_circle"
    ENCHANTED_LIBRARY = "enchanted_library"


class BillingPeriod(str, Enum):
    """Billing cadence of a paid subscription."""

    MONTHLY = "monthly"
    ANNUAL = "annual"


class QuotaField(str, Enum):
    """Quota fields of TierLimits that can be checked against a usage count."""

    MONTHLY_STORIES = "monthly_stories"
    MONTHLY_PREMIUM_VOICES = "monthly_premium_voices"
    MAX_CHILDREN = "max_children"
    MAX_SAVED_STORIES = "max_saved_stories"


class TierFeature(str, Enum):
    """Named feature flags. Numeric features carry a count instead of True."""

    WEB_VOICE_ONLY = "web_voice_only"
    DOWNLOADS = "downloads"
    BASIC_THEMES = "basic_themes"
    FAMILY_SHARING = "family_sharing"
    PREMIUM_THEMES = "premium_themes"
    SCHEDULED_DELIVERY = "scheduled_delivery"
    ANALYTICS = "analytics"
    PDF_DOWNLOAD = "pdf_download"
    MP3_DOWNLOAD = "mp3_download"
    CHARACTER_VOICES = "character_voices"
    CUSTOM_THEMES = "custom_themes"
    PRIORITY_SUPPORT = "priority_support"
    EARLY_ACCESS = "early_access"
    GIFT_PER_YEAR = "gift_per_year"


class BillingErrorCode(str, Enum):
    """Named failure conditions of subscription management calls."""

    NO_SUBSCRIPTION = "no_subscription"
    NO_ACTIVE_SUBSCRIPTION = "no_active_subscription"
    ALREADY_ON_PLAN = "already_on_plan"
    NOT_FOUND = "not_found"
