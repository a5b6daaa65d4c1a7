"""Billing-specific exceptions."""

from common.core.exceptions import AppException, NotFoundError, ValidationError
from packages.billing.models.domain.usage import UsageDecision


class SubscriptionNotFoundError(NotFoundError):
    """No subscription matches the user or Stripe customer."""

    pass


class WebhookPayloadError(ValidationError):
    """Webhook payload is malformed or lacks the linkage needed to apply it."""

    pass


class QuotaExceededError(AppException):
    """Raised by the story generation gate when the request is denied."""

    def __init__(self, decision: UsageDecision):
        super().__init__(decision.reason)
        self.decision = decision
