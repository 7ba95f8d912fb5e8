"""
Payments API routes: payment order lifecycle and the bank mutation webhook.

Keep this thin: matching and state changes live in the application services.
"""
from __future__ import annotations

import hashlib
import ipaddress
from typing import List
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query, Request, status

from api.dependencies import get_order_service, get_reconciliation_service
from application.dtos.payments import CreateOrderRequest, OrderResponse, PaymentCheckResult, WebhookResult
from application.services.payment_order_service import PaymentOrderApplicationService
from application.services.reconciliation_service import ReconciliationService
from core.exceptions import ForbiddenException
from core.i18n import t
from core.logging_config import get_logger
from core.response import Response as ApiResponse, success_response
from core.settings import payment_settings
from infrastructure.external.cache import get_redis_client
from infrastructure.external.moota.exceptions import MutationPayloadError
from infrastructure.external.moota.mapping import parse_webhook_payload


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _ip_allowed(remote_ip: str | None) -> bool:
    allowlist = payment_settings.webhook.ip_allowlist or []
    if not allowlist:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


@router.post(
    "/orders",
    summary="Create payment order",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[OrderResponse],
)
async def create_order(
    payload: CreateOrderRequest,
    service: PaymentOrderApplicationService = Depends(get_order_service),
):
    """
    Issue a PENDING order with a unique code.

    The customer must transfer exactly `total_amount` (amount + unique code).
    """
    order = await service.create_order(payload)
    return success_response(data=order, message=t("payments.order.created", default="Order created"))


@router.get("/orders", summary="List open orders", response_model=ApiResponse[List[OrderResponse]])
async def list_open_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: PaymentOrderApplicationService = Depends(get_order_service),
):
    orders = await service.list_open_orders(skip=skip, limit=limit)
    return success_response(data=orders)


@router.get("/orders/{order_id}", summary="Get payment order", response_model=ApiResponse[OrderResponse])
async def get_order(
    order_id: str,
    service: PaymentOrderApplicationService = Depends(get_order_service),
):
    order = await service.get_order(order_id)
    return success_response(data=order)


@router.post(
    "/orders/{order_id}/confirm",
    summary="Customer confirms the transfer",
    response_model=ApiResponse[OrderResponse],
)
async def confirm_transfer(
    order_id: str,
    service: PaymentOrderApplicationService = Depends(get_order_service),
):
    order = await service.confirm_transfer(order_id)
    return success_response(data=order, message=t("payments.order.checking", default="Verifying payment"))


@router.post("/orders/{order_id}/cancel", summary="Cancel order", response_model=ApiResponse[OrderResponse])
async def cancel_order(
    order_id: str,
    service: PaymentOrderApplicationService = Depends(get_order_service),
):
    order = await service.cancel_order(order_id)
    return success_response(data=order, message=t("payments.order.cancelled", default="Order cancelled"))


@router.post(
    "/orders/{order_id}/check",
    summary="Check payment against bank mutations",
    response_model=ApiResponse[PaymentCheckResult],
)
async def check_payment(
    order_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Pull-path reconciliation; `paid=false` means poll again later."""
    result = await service.check_payment_status(order_id)
    message = (
        t("payments.order.paid", default="Payment received")
        if result.paid
        else t("payments.order.not_paid", default="Payment not found yet")
    )
    return success_response(data=result, message=message)


@router.post("/webhooks/moota", summary="Bank mutation webhook", response_model=WebhookResult)
async def moota_webhook(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Push path. Responds with the bare `{processed, errors}` object the
    aggregator expects; a bad signature is rejected with 401.
    """
    remote_ip = request.client.host if request.client else None
    if not _ip_allowed(remote_ip):
        logger.warning("webhook_ip_rejected", security_event=True, remote_ip=remote_ip)
        raise ForbiddenException(t("payments.webhook.ip_not_allowed", default="IP not allowed"))

    raw_body = await request.body()
    tz = ZoneInfo(payment_settings.orders.business_timezone)
    try:
        mutations, parse_errors = parse_webhook_payload(raw_body, tz)
    except MutationPayloadError as exc:
        mutations, parse_errors = [], [f"Invalid payload: {exc}"]

    cfg = payment_settings.webhook
    cache = get_redis_client()
    dedupe_key = f"webhook:moota:{hashlib.sha256(raw_body or b'').hexdigest()}"

    async def _first_delivery() -> bool:
        return await cache.claim(dedupe_key, ttl=cfg.dedupe_ttl_seconds)

    result = await service.handle_webhook(
        mutations,
        signature=request.headers.get(cfg.signature_header),
        secret_token=request.headers.get(cfg.secret_header),
        raw_body=raw_body,
        parse_errors=parse_errors,
        dedupe=_first_delivery if cache is not None else None,
    )
    if cache is not None and result.errors and not result.processed:
        # Let the aggregator's redelivery through
        await cache.delete(dedupe_key)
    return result
