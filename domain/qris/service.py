"""
Static-to-dynamic QRIS conversion, validation and merchant lookup.

Payloads are rebuilt from parsed TLV records rather than by substring surgery,
so a value that happens to contain "5802ID" or "010211" cannot confuse the
transformer.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Union

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import InvalidAmountException, QrisFormatException

from .checksum import checksum16
from .tlv import TlvRecord, parse, serialize


UNKNOWN_MERCHANT = "Unknown Merchant"

TAG_PAYLOAD_FORMAT = "00"
TAG_INITIATION = "01"
TAG_AMOUNT = "54"
TAG_TIP_INDICATOR = "55"
TAG_FEE_FIXED = "56"
TAG_FEE_PERCENTAGE = "57"
TAG_COUNTRY = "58"
TAG_MERCHANT_NAME = "59"
TAG_MERCHANT_CITY = "60"
TAG_CRC = "63"

STATIC_INITIATION = "11"
DYNAMIC_INITIATION = "12"
COUNTRY_ID = "ID"

# Markers a raw payload must contain to pass validation.
INITIATION_MARKER = "00020101"
COUNTRY_MARKER = "5802ID"
MIN_PAYLOAD_LENGTH = 50

Number = Union[int, float, Decimal, str]


class FeeType(str, Enum):
    PERCENTAGE = "Persentase"
    FIXED = "Rupiah"

    @classmethod
    def _missing_(cls, value):
        aliases = {"percentage": cls.PERCENTAGE, "percent": cls.PERCENTAGE, "fixed": cls.FIXED}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


def _to_decimal(value: Number, *, field: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmountException(value, field=field)
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountException(value, field=field)
    if not number.is_finite():
        raise InvalidAmountException(value, field=field)
    return number


def round_amount(amount: Number, *, field: str = "amount") -> int:
    """Round to whole currency units (half up); must end up positive."""
    rounded = int(_to_decimal(amount, field=field).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if rounded <= 0:
        raise InvalidAmountException(amount, field=field)
    return rounded


def _format_percentage(value: Number) -> str:
    number = _to_decimal(value, field="fee_value").normalize()
    return format(number, "f")


def _fee_records(fee_type: Optional[Union[FeeType, str]], fee_value: Optional[Number]) -> List[TlvRecord]:
    if fee_value is None or fee_type is None:
        return []
    if _to_decimal(fee_value, field="fee_value") <= 0:
        return []
    try:
        fee_type = FeeType(fee_type)
    except ValueError:
        raise DomainValidationException(f"Unsupported fee type: {fee_type}", field="fee_type")
    if fee_type == FeeType.FIXED:
        fee = int(_to_decimal(fee_value, field="fee_value").quantize(Decimal(1), rounding=ROUND_HALF_UP))
        # A fee under half a Rupiah rounds away entirely
        if fee == 0:
            return []
        return [
            TlvRecord(TAG_TIP_INDICATOR, "02"),
            TlvRecord(TAG_FEE_FIXED, str(fee)),
        ]
    return [
        TlvRecord(TAG_TIP_INDICATOR, "03"),
        TlvRecord(TAG_FEE_PERCENTAGE, _format_percentage(fee_value)),
    ]


def make_dynamic(
    static_payload: str,
    amount: Number,
    fee_type: Optional[Union[FeeType, str]] = None,
    fee_value: Optional[Number] = None,
) -> str:
    """
    Turn a static merchant QR payload into a dynamic one carrying `amount`.

    Steps:
    1. Drop the trailing checksum record
    2. Switch point of initiation from static (11) to dynamic (12)
    3. Replace any amount/fee records with the new ones, placed before the country code
    4. Append a freshly computed checksum

    Raises QrisFormatException for malformed input, InvalidAmountException when the
    rounded amount is not positive.
    """
    value = round_amount(amount)
    records = parse(static_payload or "")
    if not records or records[-1].tag != TAG_CRC or records[-1].length != 4:
        raise QrisFormatException("checksum not found")
    records = records[:-1]

    country_positions = [
        i for i, r in enumerate(records) if r.tag == TAG_COUNTRY and r.value == COUNTRY_ID
    ]
    if len(country_positions) != 1:
        raise QrisFormatException("country code not found")

    fee = _fee_records(fee_type, fee_value)

    rebuilt: List[TlvRecord] = []
    for record in records:
        if record.tag in (TAG_AMOUNT, TAG_TIP_INDICATOR, TAG_FEE_FIXED, TAG_FEE_PERCENTAGE):
            continue
        if record.tag == TAG_INITIATION and record.value == STATIC_INITIATION:
            record = TlvRecord(TAG_INITIATION, DYNAMIC_INITIATION)
        if record.tag == TAG_COUNTRY and record.value == COUNTRY_ID:
            rebuilt.append(TlvRecord(TAG_AMOUNT, str(value)))
            rebuilt.extend(fee)
        rebuilt.append(record)

    body = serialize(rebuilt) + TAG_CRC + "04"
    return body + checksum16(body)


def validate_payload(payload: str) -> bool:
    """Structural check plus checksum; never raises."""
    if not isinstance(payload, str) or len(payload) < MIN_PAYLOAD_LENGTH:
        return False
    if INITIATION_MARKER not in payload or COUNTRY_MARKER not in payload:
        return False
    return payload[-4:] == checksum16(payload[:-4])


def extract_merchant_name(payload: str) -> str:
    """Merchant name (tag 59), or UNKNOWN_MERCHANT when it cannot be read."""
    return read_tag(payload, TAG_MERCHANT_NAME) or UNKNOWN_MERCHANT


def read_tag(payload: str, tag: str) -> Optional[str]:
    """Value of the first top-level record with `tag`; None if absent or unparsable."""
    if not isinstance(payload, str):
        return None
    try:
        records = parse(payload)
    except QrisFormatException:
        return None
    for record in records:
        if record.tag == tag:
            return record.value or None
    return None


def is_dynamic(payload: str) -> bool:
    return read_tag(payload, TAG_INITIATION) == DYNAMIC_INITIATION
