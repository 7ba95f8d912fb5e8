"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment_order import PaymentOrderModel
from .bank_settings import BankAccountSettingsModel

__all__ = [
    "Base",
    "metadata",
    "PaymentOrderModel",
    "BankAccountSettingsModel",
]
