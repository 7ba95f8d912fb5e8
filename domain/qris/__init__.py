"""QRIS payload domain exports."""
from .checksum import checksum16
from .service import (
    UNKNOWN_MERCHANT,
    FeeType,
    extract_merchant_name,
    is_dynamic,
    make_dynamic,
    read_tag,
    validate_payload,
)
from .tlv import TlvRecord

__all__ = [
    "checksum16",
    "UNKNOWN_MERCHANT",
    "FeeType",
    "extract_merchant_name",
    "is_dynamic",
    "make_dynamic",
    "read_tag",
    "validate_payload",
    "TlvRecord",
]
