"""
Factory for building the payment provider at startup.
"""

from common.core.config import Settings
from common.core.constants import Environment
from common.core.exceptions import ConfigurationError
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.providers.payment.stripe_payment import StripePaymentProvider


def get_payment_provider(settings: Settings) -> PaymentProviderInterface:
    """
    Build the payment provider from settings.

    Fails fast when Stripe credentials are missing instead of deferring
    the error to the first billing call. Unsigned webhooks are only
    accepted in the local environment.
    """
    if not settings.stripe_secret_key:
        raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
    if not settings.stripe_webhook_secret and settings.environment != Environment.LOCAL:
        raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")

    return StripePaymentProvider(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
    )
