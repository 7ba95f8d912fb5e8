"""
Payment order / reconciliation / QRIS exceptions.

Each class carries a PaymentCode so the API layer can map it to a status code
without knowing the domain.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class BankSettingsNotConfiguredException(BusinessException):
    """No active bank account settings govern order issuance."""

    def __init__(self, bank_account_id: Optional[str] = None):
        details = {"bank_account_id": bank_account_id} if bank_account_id else None
        super().__init__(
            code=PaymentCode.NOT_CONFIGURED,
            message="Bank account settings not configured",
            error_type="NotConfigured",
            details=details,
            message_key="payments.settings.not_configured",
        )


class BankSettingsNotFoundException(BusinessException):
    def __init__(self, settings_id: int):
        super().__init__(
            code=PaymentCode.SETTINGS_NOT_FOUND,
            message=f"Bank account settings not found: id={settings_id}",
            error_type="SettingsNotFound",
            details={"settings_id": settings_id},
            message_key="payments.settings.not_found",
        )


class QrisFormatException(BusinessException):
    def __init__(self, reason: str):
        super().__init__(
            code=PaymentCode.INVALID_FORMAT,
            message=f"Invalid QRIS format - {reason}",
            error_type="InvalidFormat",
            details={"reason": reason},
            field="payload",
            message_key="qris.invalid_format",
        )


class InvalidAmountException(BusinessException):
    def __init__(self, amount, *, field: str = "amount"):
        super().__init__(
            code=PaymentCode.INVALID_AMOUNT,
            message=f"Amount must be a positive whole number: {amount}",
            error_type="InvalidAmount",
            details={"amount": str(amount)},
            field=field,
            message_key="payments.amount.invalid",
        )


class WebhookSignatureException(BusinessException):
    def __init__(self, reason: str = "Invalid webhook signature"):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=reason,
            error_type="InvalidSignature",
            message_key="payments.webhook.invalid_signature",
        )


class UniqueCodeRangeExhaustedException(BusinessException):
    def __init__(self, bank_account_id: str, start: int, end: int):
        super().__init__(
            code=PaymentCode.RANGE_EXHAUSTED,
            message="Unable to generate unique code. All codes for today are used.",
            error_type="RangeExhausted",
            details={"bank_account_id": bank_account_id, "start": start, "end": end},
            message_key="payments.unique_code.exhausted",
        )


class UniqueCodeConflictException(BusinessException):
    """Raised by persistence when another order took the same code first."""

    def __init__(self, bank_account_id: str, unique_code: int):
        super().__init__(
            code=PaymentCode.UNIQUE_CODE_CONFLICT,
            message=f"Unique code {unique_code} already issued today",
            error_type="UniqueCodeConflict",
            details={"bank_account_id": bank_account_id, "unique_code": unique_code},
        )


class InvalidTransitionException(BusinessException):
    def __init__(self, order_id: str, current: str, target: str, reason: Optional[str] = None):
        details = {"order_id": order_id, "from": current, "to": target}
        if reason:
            details["reason"] = reason
        super().__init__(
            code=PaymentCode.INVALID_TRANSITION,
            message=f"Cannot transition order {order_id} from {current} to {target}",
            error_type="InvalidTransition",
            details=details,
            field="status",
            message_key="payments.order.invalid_transition",
        )


class MutationAlreadyMatchedException(InvalidTransitionException):
    """A bank mutation may settle at most one order."""

    def __init__(self, order_id: str, mutation_id: str):
        super().__init__(order_id, "OPEN", "PAID", reason=f"mutation {mutation_id} already matched")
        self.mutation_id = mutation_id


class PaymentOrderNotFoundException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=PaymentCode.ORDER_NOT_FOUND,
            message=f"Payment order not found: {order_id}",
            error_type="PaymentOrderNotFound",
            details={"order_id": order_id},
            message_key="payments.order.not_found",
        )


class PaymentOrderAlreadyExistsException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=PaymentCode.ORDER_ALREADY_EXISTS,
            message=f"Payment order {order_id} already exists",
            error_type="PaymentOrderAlreadyExists",
            details={"order_id": order_id},
            field="order_id",
            message_key="payments.order.exists",
        )
