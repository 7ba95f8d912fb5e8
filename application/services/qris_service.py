"""
QRIS application service - thin use-case wrapper over the payload transformer.
"""
from application.dtos.payments import (
    QrisDynamicRequest,
    QrisDynamicResponse,
    QrisInspectRequest,
    QrisInspectResponse,
)
from core.logging_config import get_logger
from domain.qris import extract_merchant_name, is_dynamic, make_dynamic, read_tag, validate_payload
from domain.qris.service import TAG_AMOUNT, TAG_MERCHANT_CITY, round_amount


logger = get_logger(__name__)


class QrisApplicationService:

    def generate_dynamic(self, req: QrisDynamicRequest) -> QrisDynamicResponse:
        amount = round_amount(req.amount)
        payload = make_dynamic(req.payload, amount, fee_type=req.fee_type, fee_value=req.fee_value)
        merchant = extract_merchant_name(payload)
        logger.info("qris_dynamic_generated", merchant=merchant, amount=amount, fee_type=req.fee_type)
        return QrisDynamicResponse(
            payload=payload,
            merchant_name=merchant,
            amount=amount,
            valid=validate_payload(payload),
        )

    def inspect(self, req: QrisInspectRequest) -> QrisInspectResponse:
        raw_amount = read_tag(req.payload, TAG_AMOUNT)
        amount = int(raw_amount) if raw_amount and raw_amount.isdigit() else None
        return QrisInspectResponse(
            valid=validate_payload(req.payload),
            merchant_name=extract_merchant_name(req.payload),
            merchant_city=read_tag(req.payload, TAG_MERCHANT_CITY),
            is_dynamic=is_dynamic(req.payload),
            amount=amount,
        )
