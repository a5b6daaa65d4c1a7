"""Outcome of subscription management calls."""

from typing import Optional
from pydantic import BaseModel

from packages.billing.models.domain.enums import BillingErrorCode


class BillingOperationResult(BaseModel):
    """
    success/message pair returned by change, cancel and reactivate.

    Missing lookups are reported through error_code instead of raising,
    so callers can tell "no subscription to modify" from a provider failure.
    """

    success: bool
    message: str
    error_code: Optional[BillingErrorCode] = None

    @classmethod
    def ok(cls, message: str) -> "BillingOperationResult":
        return cls(success=True, message=message)

    @classmethod
    def failure(
        cls, message: str, error_code: BillingErrorCode
    ) -> "BillingOperationResult":
        return cls(success=False, message=message, error_code=error_code)
