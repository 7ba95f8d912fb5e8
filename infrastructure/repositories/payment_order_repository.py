"""
Payment order repository - SQLAlchemy implementation
"""
from datetime import date, datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.payment.entity import OPEN_STATUSES, OrderStatus, PaymentOrder
from domain.payment.exceptions import (
    MutationAlreadyMatchedException,
    PaymentOrderAlreadyExistsException,
    UniqueCodeConflictException,
)
from domain.payment.repository import PaymentOrderRepository
from infrastructure.models.payment_order import PaymentOrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)

_OPEN = [s.value for s in OPEN_STATUSES]


class SQLAlchemyPaymentOrderRepository(PaymentOrderRepository):
    """Payment order persistence on SQLAlchemy.

    Status changes only go through `transition`, a conditional UPDATE whose WHERE
    clause carries the expected current status.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentOrderModel) -> PaymentOrder:
        return PaymentOrder(
            id=model.id,
            order_id=model.order_id,
            customer_name=model.customer_name,
            customer_phone=model.customer_phone,
            amount=int(model.amount),
            unique_code=int(model.unique_code),
            total_amount=int(model.total_amount),
            status=OrderStatus(model.status),
            bank_account_id=model.bank_account_id,
            mutation_id=model.mutation_id,
            description=model.description,
            created_at=model.created_at,
            expires_at=model.expires_at,
            paid_at=model.paid_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: PaymentOrder, issued_date: date) -> PaymentOrderModel:
        return PaymentOrderModel(
            order_id=entity.order_id,
            customer_name=entity.customer_name,
            customer_phone=entity.customer_phone,
            amount=entity.amount,
            unique_code=entity.unique_code,
            total_amount=entity.total_amount,
            status=entity.status.value,
            bank_account_id=entity.bank_account_id,
            issued_date=issued_date,
            mutation_id=entity.mutation_id,
            description=entity.description,
            created_at=entity.created_at,
            expires_at=entity.expires_at,
            paid_at=entity.paid_at,
            updated_at=entity.updated_at or entity.created_at,
        )

    async def create(self, order: PaymentOrder, issued_date: date) -> PaymentOrder:
        try:
            db_order = self._to_model(order, issued_date)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
            logger.info(
                "payment_order_created",
                order_id=db_order.order_id,
                bank_account_id=db_order.bank_account_id,
                unique_code=db_order.unique_code,
                total_amount=db_order.total_amount,
            )
            return self._to_entity(db_order)
        except IntegrityError as e:
            await self.session.rollback()
            # The constraint name is in the driver message; str(e) also carries the SQL
            msg = str(e.orig).lower()
            if "unique_code" in msg or "account_day_code" in msg:
                logger.warning(
                    "payment_order_code_conflict",
                    bank_account_id=order.bank_account_id,
                    unique_code=order.unique_code,
                )
                raise UniqueCodeConflictException(order.bank_account_id, order.unique_code)
            if "order_id" in msg:
                logger.warning("payment_order_create_conflict", order_id=order.order_id)
                raise PaymentOrderAlreadyExistsException(order.order_id)
            raise

    async def get_by_order_id(self, order_id: str) -> Optional[PaymentOrder]:
        result = await self.session.execute(
            select(PaymentOrderModel)
            .where(PaymentOrderModel.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_mutation_id(self, mutation_id: str) -> Optional[PaymentOrder]:
        result = await self.session.execute(
            select(PaymentOrderModel).where(PaymentOrderModel.mutation_id == mutation_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def transition(
        self,
        order_id: str,
        expected_statuses: Iterable[OrderStatus],
        *,
        status: OrderStatus,
        updated_at: datetime,
        paid_at: Optional[datetime] = None,
        mutation_id: Optional[str] = None,
    ) -> Optional[PaymentOrder]:
        expected = [OrderStatus(s).value for s in expected_statuses]
        values = {"status": status.value, "updated_at": updated_at}
        if paid_at is not None:
            values["paid_at"] = paid_at
        if mutation_id is not None:
            values["mutation_id"] = mutation_id

        stmt = (
            update(PaymentOrderModel)
            .where(
                PaymentOrderModel.order_id == order_id,
                PaymentOrderModel.status.in_(expected),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except IntegrityError:
            await self.session.rollback()
            logger.warning("payment_order_mutation_conflict", order_id=order_id, mutation_id=mutation_id)
            raise MutationAlreadyMatchedException(order_id, mutation_id or "")

        if result.rowcount == 0:
            logger.info(
                "payment_order_transition_skipped",
                order_id=order_id,
                expected=expected,
                target=status.value,
            )
            return None
        return await self.get_by_order_id(order_id)

    async def list_open(self, skip: int = 0, limit: int = 100) -> List[PaymentOrder]:
        result = await self.session.execute(
            select(PaymentOrderModel)
            .where(PaymentOrderModel.status.in_(_OPEN))
            .order_by(PaymentOrderModel.created_at.desc(), PaymentOrderModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_expired_open(self, now: datetime, limit: int = 500) -> List[PaymentOrder]:
        result = await self.session.execute(
            select(PaymentOrderModel)
            .where(
                PaymentOrderModel.status.in_(_OPEN),
                PaymentOrderModel.expires_at < now,
            )
            .order_by(PaymentOrderModel.expires_at.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def used_unique_codes(self, bank_account_id: str, issued_date: date) -> Set[int]:
        result = await self.session.execute(
            select(PaymentOrderModel.unique_code).where(
                PaymentOrderModel.bank_account_id == bank_account_id,
                PaymentOrderModel.issued_date == issued_date,
            )
        )
        return {int(code) for code in result.scalars().all()}

    async def find_oldest_open_by_total(
        self,
        total_amount: int,
        *,
        bank_account_id: Optional[str] = None,
        not_expired_at: Optional[datetime] = None,
    ) -> Optional[PaymentOrder]:
        query = select(PaymentOrderModel).where(
            PaymentOrderModel.total_amount == total_amount,
            PaymentOrderModel.status.in_(_OPEN),
        )
        if bank_account_id:
            query = query.where(PaymentOrderModel.bank_account_id == bank_account_id)
        if not_expired_at is not None:
            query = query.where(PaymentOrderModel.expires_at >= not_expired_at)
        query = query.order_by(PaymentOrderModel.created_at.asc(), PaymentOrderModel.id.asc()).limit(1)
        result = await self.session.execute(query)
        db_order = result.scalars().first()
        return self._to_entity(db_order) if db_order else None
