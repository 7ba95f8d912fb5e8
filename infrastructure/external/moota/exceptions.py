"""
Bank aggregator failures mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class BankAggregatorError(BusinessException):
    def __init__(self, message: str, *, provider: str = "moota", status_code: int | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="BankAggregatorError",
            details=full_details,
            message_key="payments.aggregator.error",
        )


class BankAggregatorRecoverableError(BusinessException):
    """Timeouts, rate limits and 5xx: worth retrying later."""

    def __init__(self, message: str, *, provider: str = "moota", status_code: int | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="BankAggregatorRecoverableError",
            details=full_details,
            message_key="payments.aggregator.unavailable",
        )


class MutationPayloadError(ValueError):
    """A mutation record from the aggregator could not be understood."""
