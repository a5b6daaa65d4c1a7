"""Service for retrieving billing plan information."""

from typing import Optional

from common.core.constants import UNLIMITED
from common.core.telemetry import trace_span
from packages.billing.models.domain.tiers import PlanInfo, PlansResponse, TierInfo
from packages.billing.tiers import get_tier_rank, list_tiers


def _cap(value: int) -> Optional[int]:
    return None if value == UNLIMITED else value


class PlansService:
    """Builds the public plan listing from the tier catalog."""

    @trace_span
    def get_all_plans(self) -> PlansResponse:
        """Get all plans in rank order with pricing and limits."""
        return PlansResponse(plans=[self._build_plan_info(info) for info in list_tiers()])

    def _build_plan_info(self, info: TierInfo) -> PlanInfo:
        limits = info.limits
        return PlanInfo(
            tier=info.tier,
            name=info.name,
            description=info.description,
            rank=get_tier_rank(info.tier),
            monthly_price=info.monthly_price,
            annual_price=info.annual_price,
            annual_savings_percent=info.annual_savings_percent,
            monthly_stories=limits.monthly_stories,
            monthly_premium_voices=limits.monthly_premium_voices,
            max_children=_cap(limits.max_children),
            max_saved_stories=_cap(limits.max_saved_stories),
            features=dict(limits.features),
        )
