"""
Unit tests for payment provider construction.
"""

import pytest

from common.core.config import Settings
from common.core.constants import Environment
from common.core.exceptions import ConfigurationError
from packages.billing.providers import get_payment_provider
from packages.billing.providers.payment.stripe_payment import StripePaymentProvider


class TestGetPaymentProvider:
    def test_missing_secret_key_fails_fast(self):
        with pytest.raises(ConfigurationError):
            get_payment_provider(Settings(stripe_secret_key=""))

    def test_missing_webhook_secret_outside_local(self):
        settings = Settings(
            stripe_secret_key="sk_test_123",
            stripe_webhook_secret="",
            environment=Environment.PRODUCTION,
        )
        with pytest.raises(ConfigurationError):
            get_payment_provider(settings)

    def test_local_allows_unsigned_webhooks(self):
        provider = get_payment_provider(
            Settings(stripe_secret_key="sk_test_123", environment=Environment.LOCAL)
        )
        assert isinstance(provider, StripePaymentProvider)
        assert provider.webhook_secret == ""
