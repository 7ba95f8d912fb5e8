"""
API dependencies - application service wiring.

Routes depend on these providers only, so tests swap the unit of work or the
aggregator through app.dependency_overrides.
"""
from typing import Callable

from fastapi import Depends

from application.ports.bank_aggregator import AggregatorFactory
from application.services.bank_settings_service import BankSettingsApplicationService
from application.services.payment_order_service import PaymentOrderApplicationService
from application.services.qris_service import QrisApplicationService
from application.services.reconciliation_service import ReconciliationService
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.moota import get_bank_aggregator
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


def get_aggregator_factory() -> AggregatorFactory:
    return get_bank_aggregator


async def get_order_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> PaymentOrderApplicationService:
    return PaymentOrderApplicationService(uow_factory)


async def get_reconciliation_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    aggregator_factory: AggregatorFactory = Depends(get_aggregator_factory),
    orders: PaymentOrderApplicationService = Depends(get_order_service),
) -> ReconciliationService:
    return ReconciliationService(uow_factory, aggregator_factory, orders)


async def get_bank_settings_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    aggregator_factory: AggregatorFactory = Depends(get_aggregator_factory),
) -> BankSettingsApplicationService:
    return BankSettingsApplicationService(uow_factory, aggregator_factory)


async def get_qris_service() -> QrisApplicationService:
    return QrisApplicationService()
