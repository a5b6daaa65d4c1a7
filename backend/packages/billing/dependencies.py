"""
FastAPI dependencies for billing services.

Clients are built once in the app lifespan and read from app.state here,
so tests can inject fakes through create_app().
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.db.session import get_session_factory
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_service import UsageService
from packages.billing.tiers import PriceCatalog
from packages.billing.webhooks.stripe_webhook import StripeEventHandler


def get_payment_provider(request: Request) -> PaymentProviderInterface:
    return request.app.state.payment_provider


def get_price_catalog(request: Request) -> PriceCatalog:
    return request.app.state.price_catalog


def get_subscription_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    payment_provider: PaymentProviderInterface = Depends(get_payment_provider),
    price_catalog: PriceCatalog = Depends(get_price_catalog),
) -> SubscriptionService:
    return SubscriptionService(session_factory, payment_provider, price_catalog)


def get_usage_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> UsageService:
    return UsageService(session_factory)


def get_entitlement_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    usage_service: UsageService = Depends(get_usage_service),
) -> EntitlementService:
    return EntitlementService(session_factory, usage_service)


def get_stripe_event_handler(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    payment_provider: PaymentProviderInterface = Depends(get_payment_provider),
    price_catalog: PriceCatalog = Depends(get_price_catalog),
) -> StripeEventHandler:
    return StripeEventHandler(session_factory, payment_provider, price_catalog)
