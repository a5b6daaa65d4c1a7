"""Domain models for the tier catalog and public plan listing."""

from decimal import Decimal
from typing import Dict, Optional, Union
from pydantic import BaseModel, ConfigDict

from packages.billing.models.domain.enums import SubscriptionTier, TierFeature

FeatureValue = Union[bool, int]


class TierLimits(BaseModel):
    """Quota limits for a tier. UNLIMITED (-1) means no cap; 0 is a hard cap."""

    model_config = ConfigDict(frozen=True)

    monthly_stories: int
    monthly_premium_voices: int
    max_children: int
    max_saved_stories: int
    features: Dict[TierFeature, FeatureValue]


class TierInfo(BaseModel):
    """Display and pricing information for a tier."""

    model_config = ConfigDict(frozen=True)

    tier: SubscriptionTier
    name: str
    description: str
    monthly_price: Decimal
    annual_price: Decimal
    limits: TierLimits

    @property
    def annual_savings_percent(self) -> int:
        """Discount of annual billing over twelve monthly payments."""
        if self.monthly_price == 0:
            return 0
        full_year = self.monthly_price * 12
        return int(((full_year - self.annual_price) / full_year * 100).to_integral_value())


class PlanInfo(BaseModel):
    """Plan entry of the public pricing listing."""

    tier: SubscriptionTier
    name: str
    description: str
    rank: int
    monthly_price: Decimal
    annual_price: Decimal
    annual_savings_percent: int
    monthly_stories: int
    monthly_premium_voices: int
    max_children: Optional[int]  # None means unlimited
    max_saved_stories: Optional[int]
    features: Dict[TierFeature, FeatureValue]


class PlansResponse(BaseModel):
    """Response model for plans endpoint."""

    plans: list[PlanInfo]
