"""Billing services."""

from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.services.plans_service import PlansService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_service import UsageService

__all__ = [
    "EntitlementService",
    "PlansService",
    "SubscriptionService",
    "UsageService",
]
