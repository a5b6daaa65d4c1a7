"""
Unit tests for StripePaymentProvider.

The stripe SDK is patched; no network calls are made.
"""

import json
import pytest
import stripe
from unittest.mock import MagicMock, patch

from packages.billing.providers.payment.stripe_payment import StripePaymentProvider


def _stripe_object(**fields):
    obj = MagicMock()
    for key, value in fields.items():
        setattr(obj, key, value)
    obj.to_dict.return_value = fields
    return obj


SUBSCRIPTION = {
    "id": "sub_test123",
    "customer": "cus_test123",
    "status": "active",
    "cancel_at_period_end": False,
    "items": {
        "data": [
            {
                "id": "si_test123",
                "price": {"id": "price_mc_monthly"},
                "current_period_start": 1791158400,
                "current_period_end": 1793836800,
            }
        ]
    },
}


@pytest.fixture
def provider():
    return StripePaymentProvider(api_key="sk_test_123", webhook_secret="whsec_test")


@pytest.mark.asyncio
class TestStripeSubscriptions:
    async def test_retrieve_subscription(self, provider):
        with patch(
            "stripe.Subscription.retrieve", return_value=_stripe_object(**SUBSCRIPTION)
        ) as retrieve:
            subscription = await provider.retrieve_subscription("sub_test123")

        retrieve.assert_called_once_with("sub_test123", api_key="sk_test_123")
        assert subscription.price_id == "price_mc_monthly"
        assert subscription.item_id == "si_test123"

    async def test_upgrade_is_prorated(self, provider):
        with patch(
            "stripe.Subscription.retrieve", return_value=_stripe_object(**SUBSCRIPTION)
        ), patch(
            "stripe.Subscription.modify", return_value=_stripe_object(**SUBSCRIPTION)
        ) as modify:
            await provider.update_subscription_price(
                "sub_test123", "price_el_monthly", prorate=True, metadata={"tier": "x"}
            )

        kwargs = modify.call_args.kwargs
        assert kwargs["items"] == [{"id": "si_test123", "price": "price_el_monthly"}]
        assert kwargs["proration_behavior"] == "create_prorations"
        assert kwargs["metadata"] == {"tier": "x"}

    async def test_downgrade_is_not_prorated(self, provider):
        with patch(
            "stripe.Subscription.retrieve", return_value=_stripe_object(**SUBSCRIPTION)
        ), patch(
            "stripe.Subscription.modify", return_value=_stripe_object(**SUBSCRIPTION)
        ) as modify:
            await provider.update_subscription_price(
                "sub_test123", "price_dw_monthly", prorate=False
            )

        assert modify.call_args.kwargs["proration_behavior"] == "none"

    async def test_set_cancel_at_period_end(self, provider):
        with patch(
            "stripe.Subscription.modify", return_value=_stripe_object(**SUBSCRIPTION)
        ) as modify:
            await provider.set_cancel_at_period_end("sub_test123", True)

        modify.assert_called_once_with(
            "sub_test123", api_key="sk_test_123", cancel_at_period_end=True
        )

    async def test_cancel_subscription(self, provider):
        with patch("stripe.Subscription.cancel") as cancel:
            await provider.cancel_subscription("sub_test123")

        cancel.assert_called_once_with("sub_test123", api_key="sk_test_123")

    async def test_stripe_errors_propagate(self, provider):
        with patch(
            "stripe.Subscription.cancel",
            side_effect=stripe.InvalidRequestError("No such subscription", "id"),
        ):
            with pytest.raises(stripe.InvalidRequestError):
                await provider.cancel_subscription("sub_missing")


@pytest.mark.asyncio
class TestStripeSessions:
    async def test_create_customer(self, provider):
        with patch(
            "stripe.Customer.create", return_value=_stripe_object(id="cus_new123")
        ) as create:
            customer_id = await provider.create_customer(
                "parent@example.com", {"user_id": "1"}
            )

        assert customer_id == "cus_new123"
        assert create.call_args.kwargs["email"] == "parent@example.com"

    async def test_create_checkout_session(self, provider):
        session = _stripe_object(id="cs_test123", url="https://checkout.stripe.com/c/pay/cs")
        with patch("stripe.checkout.Session.create", return_value=session) as create:
            url = await provider.create_checkout_session(
                customer_id="cus_test123",
                price_id="price_mc_monthly",
                success_url="https://app.example.com/success",
                cancel_url="https://app.example.com/cancel",
                metadata={"user_id": "1"},
            )

        assert url == "https://checkout.stripe.com/c/pay/cs"
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [{"price": "price_mc_monthly", "quantity": 1}]
        assert kwargs["subscription_data"] == {"metadata": {"user_id": "1"}}

    async def test_create_portal_session(self, provider):
        session = _stripe_object(url="https://billing.stripe.com/p/session/x")
        with patch("stripe.billing_portal.Session.create", return_value=session):
            url = await provider.create_portal_session(
                "cus_test123", "https://app.example.com/account"
            )

        assert url == "https://billing.stripe.com/p/session/x"

    async def test_health_check(self, provider):
        with patch("stripe.Account.retrieve", return_value=_stripe_object(id="acct_1")):
            assert await provider.health_check() is True

        with patch(
            "stripe.Account.retrieve",
            side_effect=stripe.AuthenticationError("Invalid API Key"),
        ):
            assert await provider.health_check() is False


class TestConstructEvent:
    def test_verifies_signature(self, provider):
        event = _stripe_object(id="evt_test123", type="invoice.paid")
        with patch("stripe.Webhook.construct_event", return_value=event) as construct:
            result = provider.construct_event(b"{}", "t=1,v1=abc")

        construct.assert_called_once_with(b"{}", "t=1,v1=abc", "whsec_test")
        assert result["id"] == "evt_test123"

    def test_bad_signature_raises(self, provider):
        with patch(
            "stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad", "t=1,v1=abc"),
        ):
            with pytest.raises(stripe.SignatureVerificationError):
                provider.construct_event(b"{}", "t=1,v1=abc")

    def test_unsigned_without_secret(self):
        provider = StripePaymentProvider(api_key="sk_test_123")
        payload = {"id": "evt_test123", "type": "invoice.paid"}

        assert provider.construct_event(json.dumps(payload).encode(), None) == payload
