"""
Payment order application service - orchestrates the order lifecycle use-cases.

Every status change, whoever triggers it (customer, operator, poll, webhook,
sweep), goes through PaymentOrderDomainService.transition, the single guarded
path onto the repository's compare-and-swap.
"""
from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, tzinfo
from typing import Awaitable, Callable, List, Optional
from zoneinfo import ZoneInfo

from application.dtos.payments import CreateOrderRequest, OrderResponse, SweepResult
from application.utils.sanitize import sanitize_text
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.allocator import UniqueCodeAllocator
from domain.payment.entity import OrderStatus, PaymentOrder, utcnow
from domain.payment.events import PaymentOrderEvent
from domain.payment.exceptions import InvalidTransitionException
from domain.payment.service import PaymentOrderDomainService


logger = get_logger(__name__)

EventSink = Callable[[PaymentOrderEvent], Awaitable[None]]

_ALPHABET = string.ascii_lowercase + string.digits

# payment_orders.customer_name is VARCHAR(100)
CUSTOMER_NAME_MAX_LENGTH = 100


def generate_order_id(prefix: str = "BK", now: Optional[datetime] = None) -> str:
    """BK-<epoch millis>-<9 random [a-z0-9]>, the reference customers put in transfer notes."""
    millis = int((now.timestamp() if now else time.time()) * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"{prefix}-{millis}-{suffix}"


class PaymentOrderApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        clock: Callable[[], datetime] = utcnow,
        tz: Optional[tzinfo] = None,
        allocator_factory: Optional[Callable[..., UniqueCodeAllocator]] = None,
        event_sink: Optional[EventSink] = None,
        conflict_retries: Optional[int] = None,
        order_id_prefix: Optional[str] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock
        self._tz = tz or ZoneInfo(payment_settings.orders.business_timezone)
        self._allocator_factory = allocator_factory
        self._event_sink = event_sink
        self._conflict_retries = (
            payment_settings.orders.unique_code_conflict_retries if conflict_retries is None else conflict_retries
        )
        self._prefix = order_id_prefix or payment_settings.orders.order_id_prefix

    def domain_service(self, uow: AbstractUnitOfWork) -> PaymentOrderDomainService:
        allocator = None
        if self._allocator_factory is not None:
            allocator = self._allocator_factory(uow.order_repository, tz=self._tz)
        return PaymentOrderDomainService(
            uow.order_repository,
            uow.settings_repository,
            allocator=allocator,
            clock=self._clock,
            tz=self._tz,
            conflict_retries=self._conflict_retries,
        )

    async def publish(self, events: List[PaymentOrderEvent]) -> None:
        """Hand committed events to the sink; a failing sink never undoes a transition."""
        for event in events:
            logger.info(
                "payment_order_event",
                event_type=type(event).__name__,
                order_id=event.order_id,
                total_amount=event.total_amount,
            )
            if self._event_sink is None:
                continue
            try:
                await self._event_sink(event)
            except Exception as exc:
                logger.error(
                    "payment_order_event_sink_failed",
                    event_type=type(event).__name__,
                    order_id=event.order_id,
                    error=str(exc),
                )

    async def create_order(self, req: CreateOrderRequest) -> OrderResponse:
        order_id = req.order_id or generate_order_id(self._prefix, self._clock())
        customer_name = sanitize_text(req.customer_name, max_length=CUSTOMER_NAME_MAX_LENGTH, field="customer_name")
        description = sanitize_text(req.description) if req.description else None
        async with self._uow_factory() as uow:
            domain = self.domain_service(uow)
            order = await domain.issue_order(
                order_id=order_id,
                customer_name=customer_name,
                customer_phone=req.customer_phone,
                amount=req.amount,
                description=description,
            )
            events = domain.clear_events()
        await self.publish(events)
        return OrderResponse.from_entity(order)

    async def get_order(self, order_id: str) -> OrderResponse:
        """Read an order, expiring it first when it is open and past expires_at."""
        order = await self.load(order_id)
        if order.is_open() and order.is_expired(self._clock()):
            try:
                return await self.update_status(order_id, OrderStatus.EXPIRED, source="read")
            except InvalidTransitionException as exc:
                logger.info("payment_order_transition_rejected", order_id=order_id, reason=exc.message)
                order = await self.load(order_id)
        return OrderResponse.from_entity(order)

    async def load(self, order_id: str) -> PaymentOrder:
        async with self._uow_factory(readonly=True) as uow:
            return await self.domain_service(uow).get_order(order_id)

    async def list_open_orders(self, skip: int = 0, limit: int = 100) -> List[OrderResponse]:
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_open(skip=skip, limit=limit)
        return [OrderResponse.from_entity(o) for o in orders]

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        mutation_id: Optional[str] = None,
        *,
        source: str = "manual",
    ) -> OrderResponse:
        """
        Guarded status change.

        PAID -> PAID is a no-op that keeps the first paid_at/mutation_id. Illegal
        transitions raise InvalidTransitionException and leave the order untouched.
        """
        try:
            async with self._uow_factory() as uow:
                domain = self.domain_service(uow)
                order, applied = await domain.transition(
                    order_id, OrderStatus(status), mutation_id=mutation_id, source=source
                )
                events = domain.clear_events()
        except InvalidTransitionException as exc:
            logger.info(
                "payment_order_transition_rejected",
                order_id=order_id,
                target=OrderStatus(status).value,
                source=source,
                reason=exc.message,
            )
            raise
        if applied:
            logger.info(
                "payment_order_transition_applied",
                order_id=order_id,
                status=order.status.value,
                mutation_id=order.mutation_id,
                source=source,
            )
        await self.publish(events)
        return OrderResponse.from_entity(order)

    async def confirm_transfer(self, order_id: str) -> OrderResponse:
        """Customer reports the transfer; the order moves to CHECKING."""
        return await self.update_status(order_id, OrderStatus.CHECKING, source="customer")

    async def cancel_order(self, order_id: str) -> OrderResponse:
        return await self.update_status(order_id, OrderStatus.CANCELLED, source="operator")

    async def sweep_expired(self, limit: Optional[int] = None) -> SweepResult:
        """Expire open orders past expires_at; each order in its own transaction."""
        now = self._clock()
        batch = limit or payment_settings.orders.sweep_batch_size
        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.order_repository.list_expired_open(now, limit=batch)

        result = SweepResult()
        for order in stale:
            try:
                await self.update_status(order.order_id, OrderStatus.EXPIRED, source="sweep")
                result.expired.append(order.order_id)
            except InvalidTransitionException as exc:
                # Settled or cancelled between the scan and the update
                logger.info("payment_order_sweep_skipped", order_id=order.order_id, reason=exc.message)
            except BusinessException as exc:
                logger.warning("payment_order_sweep_failed", order_id=order.order_id, error=exc.message)
                result.errors.append(f"{order.order_id}: {exc.message}")
        if stale:
            logger.info("payment_order_sweep_done", scanned=len(stale), expired=len(result.expired))
        return result
