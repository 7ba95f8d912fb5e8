"""
Business codes shared by every layer.

``BusinessCode`` covers generic request and system failures;
order, settlement and aggregator failures live in ``shared.codes.payment_codes``.
"""
from enum import IntEnum

from .payment_codes import PaymentCode


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request errors (1xxxx)
    PARAM_VALIDATION_ERROR = 10003

    # Lookup errors (2xxxx)
    NOT_FOUND = 20006

    # Access errors (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003

    # Rate limiting (5xxxx)
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode", "PaymentCode"]
