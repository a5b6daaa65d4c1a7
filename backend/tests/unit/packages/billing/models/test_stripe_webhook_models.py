"""
Unit tests for Stripe payload parsing.
"""

from datetime import datetime, timezone

from packages.billing.models.domain.stripe_webhooks import (
    StripeInvoiceData,
    StripeSubscriptionData,
    StripeSubscriptionStatus,
    StripeWebhookPayload,
)


class TestStripeSubscriptionData:
    def test_period_read_from_item(self):
        data = StripeSubscriptionData.model_validate(
            {
                "id": "sub_1",
                "customer": "cus_1",
                "status": "active",
                "items": {
                    "data": [
                        {
                            "id": "si_1",
                            "price": {"id": "price_1"},
                            "current_period_start": 1791158400,
                            "current_period_end": 1793836800,
                        }
                    ]
                },
            }
        )
        assert data.price_id == "price_1"
        assert data.item_id == "si_1"
        assert data.period_start == datetime.fromtimestamp(1791158400, tz=timezone.utc)
        assert data.period_end.tzinfo == timezone.utc

    def test_top_level_period_wins(self):
        data = StripeSubscriptionData.model_validate(
            {
                "id": "sub_1",
                "customer": "cus_1",
                "status": "past_due",
                "current_period_start": 100,
                "items": {
                    "data": [
                        {
                            "id": "si_1",
                            "price": {"id": "price_1"},
                            "current_period_start": 200,
                        }
                    ]
                },
            }
        )
        assert data.current_period_start == 100
        assert data.status == StripeSubscriptionStatus.PAST_DUE

    def test_no_items(self):
        data = StripeSubscriptionData.model_validate(
            {"id": "sub_1", "customer": "cus_1", "status": "canceled"}
        )
        assert data.price_id is None
        assert data.period_start is None


class TestStripeInvoiceData:
    def test_subscription_from_parent(self):
        invoice = StripeInvoiceData.model_validate(
            {
                "id": "in_1",
                "customer": "cus_1",
                "parent": {"subscription_details": {"subscription": "sub_1"}},
            }
        )
        assert invoice.subscription == "sub_1"

    def test_one_off_invoice(self):
        invoice = StripeInvoiceData.model_validate({"id": "in_1", "customer": "cus_1"})
        assert invoice.subscription is None


class TestStripeWebhookPayload:
    def test_unknown_event_type_is_accepted(self):
        payload = StripeWebhookPayload.model_validate(
            {
                "id": "evt_1",
                "type": "customer.created",
                "data": {"object": {"id": "cus_1"}},
                "created": 1791158400,
            }
        )
        assert payload.type == "customer.created"
        assert payload.livemode is False
