"""
Payment provider interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from packages.billing.models.domain.stripe_webhooks import StripeSubscriptionData


class PaymentProviderInterface(ABC):
    """
    Abstract payment provider.

    Implementations propagate provider errors unchanged; callers decide
    how to surface them.
    """

    @abstractmethod
    async def retrieve_subscription(self, subscription_id: str) -> StripeSubscriptionData:
        """Fetch the live subscription, including price and period boundaries."""
        pass

    @abstractmethod
    async def update_subscription_price(
        self,
        subscription_id: str,
        price_id: str,
        prorate: bool,
        metadata: Optional[Dict[str, str]] = None,
    ) -> StripeSubscriptionData:
        """Swap the subscription's price. Prorates only when asked to."""
        pass

    @abstractmethod
    async def set_cancel_at_period_end(
        self, subscription_id: str, cancel_at_period_end: bool
    ) -> StripeSubscriptionData:
        pass

    @abstractmethod
    async def cancel_subscription(self, subscription_id: str) -> None:
        """Cancel immediately."""
        pass

    @abstractmethod
    async def create_customer(
        self, email: str, metadata: Dict[str, str]
    ) -> str:
        """Create a customer and return its ID."""
        pass

    @abstractmethod
    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> str:
        """Create a subscription-mode checkout session and return its URL."""
        pass

    @abstractmethod
    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Create a billing portal session and return its URL."""
        pass

    @abstractmethod
    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify a webhook signature and return the event."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
