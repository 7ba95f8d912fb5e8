"""
Payment specific codes and aggregator mutation-type mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Provider/Network errors (60xxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002

    # Order lifecycle / reconciliation errors (61xxx)
    NOT_CONFIGURED = 61000
    INVALID_FORMAT = 61001
    INVALID_AMOUNT = 61002
    RANGE_EXHAUSTED = 61003
    INVALID_TRANSITION = 61004
    ORDER_NOT_FOUND = 61005
    ORDER_ALREADY_EXISTS = 61006
    UNIQUE_CODE_CONFLICT = 61007
    SETTINGS_NOT_FOUND = 61008


# Aggregator mutation type -> internal (CREDIT/DEBIT). Moota's REST API reports
# CR/DB, its legacy webhook reports in/out.
MUTATION_TYPE_TO_INTERNAL = {
    "CR": "CREDIT",
    "IN": "CREDIT",
    "CREDIT": "CREDIT",
    "DB": "DEBIT",
    "OUT": "DEBIT",
    "DEBIT": "DEBIT",
}

# Internal -> Moota query parameter
INTERNAL_TO_MUTATION_TYPE = {
    "CREDIT": "CR",
    "DEBIT": "DB",
}
