"""
Celery tasks for payment orders: periodic expiry sweep and background status checks.
"""
from __future__ import annotations

import asyncio

from celery import shared_task

from application.services.payment_order_service import PaymentOrderApplicationService
from application.services.reconciliation_service import ReconciliationService
from core.logging_config import get_logger
from infrastructure.database import engine
from infrastructure.external.moota import get_bank_aggregator
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

from ..utils.base_task import BaseTask


logger = get_logger(__name__)


def _run(coro_factory):
    """Run one coroutine on a fresh loop; pooled connections are bound to it, so drop them after."""
    async def _wrapped():
        try:
            return await coro_factory()
        finally:
            await engine.dispose()

    return asyncio.run(_wrapped())


@shared_task(name="payments.sweep_expired_orders", bind=True, base=BaseTask)
def sweep_expired_orders(self, limit: int | None = None) -> dict:
    async def _sweep():
        service = PaymentOrderApplicationService(SQLAlchemyUnitOfWork)
        return await service.sweep_expired(limit)

    result = _run(_sweep)
    if result.expired or result.errors:
        logger.info("payment_orders_swept", expired=len(result.expired), errors=len(result.errors))
    return result.model_dump()


@shared_task(name="payments.check_status", bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def check_payment_status(self, order_id: str) -> dict:
    """Background pull-path check; retried while the order is still open and unpaid."""
    async def _check():
        orders = PaymentOrderApplicationService(SQLAlchemyUnitOfWork)
        reconciliation = ReconciliationService(SQLAlchemyUnitOfWork, get_bank_aggregator, orders)
        return await reconciliation.check_payment_status(order_id)

    result = _run(_check)
    logger.info("payment_status_polled", order_id=order_id, paid=result.paid, status=result.status)
    if not result.paid and result.status in ("PENDING", "CHECKING"):
        raise self.retry()
    return result.model_dump(mode="json")
