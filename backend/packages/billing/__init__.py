"""
Billing package - subscription tiers, usage metering and payments.

This package integrates with:
- Stripe: Checkout, subscription changes and lifecycle webhooks

Quotas are evaluated locally from the tier catalog and the usage ledger.
"""
