"""
Tier catalog.

Authoritative, compiled-in limits and prices for every subscription tier,
plus the Stripe price lookup built from settings. Everything here is
read-only after import and safe to share between requests.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from common.core.config import Settings
from common.core.constants import UNLIMITED
from common.core.exceptions import ConfigurationError
from common.core.telemetry import get_logger
from packages.billing.models.domain.enums import (
    BillingPeriod,
    QuotaField,
    SubscriptionTier,
    TierFeature,
)
from packages.billing.models.domain.tiers import FeatureValue, TierInfo, TierLimits

logger = get_logger(__name__)


TIER_ORDER: List[SubscriptionTier] = [
    SubscriptionTier.FREE,
    SubscriptionTier.DREAM_WEAVER,
    SubscriptionTier.MAGIC_CIRCLE,
    SubscriptionTier.ENCHANTED_LIBRARY,
]

TIER_CONFIG: Dict[SubscriptionTier, TierLimits] = {
    SubscriptionTier.FREE: TierLimits(
        monthly_stories=3,
        monthly_premium_voices=0,
        max_children=2,
        max_saved_stories=5,
        features={TierFeature.WEB_VOICE_ONLY: True},
    ),
    SubscriptionTier.DREAM_WEAVER: TierLimits(
        monthly_stories=10,
        monthly_premium_voices=3,
        max_children=3,
        max_saved_stories=UNLIMITED,
        features={
            TierFeature.DOWNLOADS: True,
            TierFeature.BASIC_THEMES: True,
        },
    ),
    SubscriptionTier.MAGIC_CIRCLE: TierLimits(
        monthly_stories=30,
        monthly_premium_voices=15,
        max_children=5,
        max_saved_stories=UNLIMITED,
        features={
            TierFeature.FAMILY_SHARING: 2,
            TierFeature.PREMIUM_THEMES: True,
            TierFeature.SCHEDULED_DELIVERY: True,
            TierFeature.ANALYTICS: True,
            TierFeature.PDF_DOWNLOAD: True,
            TierFeature.MP3_DOWNLOAD: True,
        },
    ),
    SubscriptionTier.ENCHANTED_LIBRARY: TierLimits(
        monthly_stories=60,
        monthly_premium_voices=60,
        max_children=UNLIMITED,
        max_saved_stories=UNLIMITED,
        features={
            TierFeature.FAMILY_SHARING: 4,
            TierFeature.CHARACTER_VOICES: True,
            TierFeature.CUSTOM_THEMES: True,
            TierFeature.PRIORITY_SUPPORT: True,
            TierFeature.EARLY_ACCESS: True,
            TierFeature.GIFT_PER_YEAR: 1,
        },
    ),
}

TIER_INFO: Dict[SubscriptionTier, TierInfo] = {
    SubscriptionTier.FREE: TierInfo(
        tier=SubscriptionTier.FREE,
        name="Free",
        description="A few stories a month to try things out",
        monthly_price=Decimal("0"),
        annual_price=Decimal("0"),
        limits=TIER_CONFIG[SubscriptionTier.FREE],
    ),
    SubscriptionTier.DREAM_WEAVER: TierInfo(
        tier=SubscriptionTier.DREAM_WEAVER,
        name="Dream Weaver",
        description="A story most nights with downloadable keepsakes",
        monthly_price=Decimal("6.99"),
        annual_price=Decimal("59.99"),
        limits=TIER_CONFIG[SubscriptionTier.DREAM_WEAVER],
    ),
    SubscriptionTier.MAGIC_CIRCLE: TierInfo(
        tier=SubscriptionTier.MAGIC_CIRCLE,
        name="Magic Circle",
        description="Nightly stories for the whole family with premium narration",
        monthly_price=Decimal("14.99"),
        annual_price=Decimal("119.99"),
        limits=TIER_CONFIG[SubscriptionTier.MAGIC_CIRCLE],
    ),
    SubscriptionTier.ENCHANTED_LIBRARY: TierInfo(
        tier=SubscriptionTier.ENCHANTED_LIBRARY,
        name="Enchanted Library",
        description="Unlimited children, character voices and custom themes",
        monthly_price=Decimal("29.99"),
        annual_price=Decimal("249.99"),
        limits=TIER_CONFIG[SubscriptionTier.ENCHANTED_LIBRARY],
    ),
}


def get_tier_limits(tier: SubscriptionTier) -> TierLimits:
    return TIER_CONFIG[tier]


def get_tier_info(tier: SubscriptionTier) -> TierInfo:
    return TIER_INFO[tier]


def list_tiers() -> List[TierInfo]:
    """All tiers in rank order."""
    return [TIER_INFO[tier] for tier in TIER_ORDER]


def get_quota_limit(tier: SubscriptionTier, field: QuotaField) -> int:
    return getattr(TIER_CONFIG[tier], field.value)


def has_feature(tier: SubscriptionTier, feature: TierFeature) -> bool:
    """True for enabled boolean features and positive numeric features."""
    value = TIER_CONFIG[tier].features.get(feature)
    if value is None or value is False:
        return False
    return value is True or value > 0


def get_feature_value(
    tier: SubscriptionTier, feature: TierFeature
) -> Optional[FeatureValue]:
    return TIER_CONFIG[tier].features.get(feature)


def get_tier_rank(tier: SubscriptionTier) -> int:
    return TIER_ORDER.index(tier)


def is_upgrade(current: SubscriptionTier, target: SubscriptionTier) -> bool:
    return get_tier_rank(target) > get_tier_rank(current)


def is_downgrade(current: SubscriptionTier, target: SubscriptionTier) -> bool:
    return get_tier_rank(target) < get_tier_rank(current)


class PriceCatalog:
    """
    Two-way mapping between (tier, billing period) and Stripe price IDs.

    Built once at startup from settings. Lookups of unmapped prices raise
    ConfigurationError; a price is never guessed into a tier.
    """

    def __init__(
        self,
        prices: Dict[Tuple[SubscriptionTier, BillingPeriod], str],
        legacy_prices: Optional[Dict[str, Tuple[SubscriptionTier, BillingPeriod]]] = None,
    ):
        self._price_ids = {key: value for key, value in prices.items() if value}
        self._tiers_by_price: Dict[str, Tuple[SubscriptionTier, BillingPeriod]] = {
            price_id: key for key, price_id in self._price_ids.items()
        }
        for price_id, key in (legacy_prices or {}).items():
            if price_id:
                self._tiers_by_price.setdefault(price_id, key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PriceCatalog":
        prices = {
            (SubscriptionTier.DREAM_WEAVER, BillingPeriod.MONTHLY): settings.stripe_price_id_dream_weaver_monthly,
            (SubscriptionTier.DREAM_WEAVER, BillingPeriod.ANNUAL): settings.stripe_price_id_dream_weaver_annual,
            (SubscriptionTier.MAGIC_CIRCLE, BillingPeriod.MONTHLY): settings.stripe_price_id_magic_circle_monthly,
            (SubscriptionTier.MAGIC_CIRCLE, BillingPeriod.ANNUAL): settings.stripe_price_id_magic_circle_annual,
            (SubscriptionTier.ENCHANTED_LIBRARY, BillingPeriod.MONTHLY): settings.stripe_price_id_enchanted_library_monthly,
            (SubscriptionTier.ENCHANTED_LIBRARY, BillingPeriod.ANNUAL): settings.stripe_price_id_enchanted_library_annual,
        }
        legacy = {
            settings.stripe_price_id_legacy_monthly: (
                SubscriptionTier.MAGIC_CIRCLE,
                BillingPeriod.MONTHLY,
            )
        }
        catalog = cls(prices, legacy)
        missing = catalog.missing_prices()
        if missing:
            logger.warning(
                "Stripe price IDs not configured",
                extra={"missing": [f"{t.value}:{p.value}" for t, p in missing]},
            )
        return catalog

    def missing_prices(self) -> List[Tuple[SubscriptionTier, BillingPeriod]]:
        return [
            (tier, period)
            for tier in TIER_ORDER
            if tier != SubscriptionTier.FREE
            for period in BillingPeriod
            if (tier, period) not in self._price_ids
        ]

    def price_id_for(self, tier: SubscriptionTier, period: BillingPeriod) -> str:
        if tier == SubscriptionTier.FREE:
            raise ConfigurationError("The free tier has no Stripe price")
        price_id = self._price_ids.get((tier, period))
        if not price_id:
            raise ConfigurationError(
                f"No Stripe price configured for {tier.value} ({period.value})"
            )
        return price_id

    def tier_for_price(self, price_id: str) -> Tuple[SubscriptionTier, BillingPeriod]:
        try:
            return self._tiers_by_price[price_id]
        except KeyError:
            raise ConfigurationError(f"Unknown Stripe price ID: {price_id}") from None
