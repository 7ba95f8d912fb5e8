"""
Payment order domain service - issuance and guarded status transitions.
"""
from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Callable, List, Optional, Tuple

from .allocator import UniqueCodeAllocator, business_date
from .entity import BankAccountSettings, OrderStatus, PaymentOrder, utcnow
from .events import (
    PaymentOrderCancelled,
    PaymentOrderChecking,
    PaymentOrderCreated,
    PaymentOrderEvent,
    PaymentOrderExpired,
    PaymentOrderPaid,
)
from .exceptions import (
    BankSettingsNotConfiguredException,
    InvalidTransitionException,
    PaymentOrderNotFoundException,
    UniqueCodeConflictException,
)
from .repository import BankSettingsRepository, PaymentOrderRepository


class PaymentOrderDomainService:
    """
    Orchestrates the order lifecycle.

    Responsibilities:
    1. Issue orders against the active bank settings with a collision-free code
    2. Apply status transitions through the repository's compare-and-swap, so the
       poll path and the webhook path cannot both apply the same transition
    3. Collect domain events, only for transitions that were actually applied
    """

    def __init__(
        self,
        order_repository: PaymentOrderRepository,
        settings_repository: BankSettingsRepository,
        *,
        allocator: Optional[UniqueCodeAllocator] = None,
        clock: Callable[[], datetime] = utcnow,
        tz: Optional[tzinfo] = None,
        conflict_retries: int = 3,
    ) -> None:
        self.order_repository = order_repository
        self.settings_repository = settings_repository
        self.allocator = allocator or UniqueCodeAllocator(order_repository, tz=tz)
        self.clock = clock
        self.tz = tz or self.allocator.tz
        self.conflict_retries = conflict_retries
        self.events: List[PaymentOrderEvent] = []

    async def issue_order(
        self,
        *,
        order_id: str,
        customer_name: str,
        customer_phone: str,
        amount: int,
        description: Optional[str] = None,
    ) -> PaymentOrder:
        """
        Create a PENDING order.

        Business rules:
        1. An active BankAccountSettings row is required
        2. The unique code is re-allocated when the insert loses a race for it
        """
        settings = await self.settings_repository.get_active()
        if settings is None:
            raise BankSettingsNotConfiguredException()

        attempts = max(1, self.conflict_retries + 1)
        for attempt in range(attempts):
            now = self.clock()
            unique_code = await self.allocator.allocate(settings, now)
            order = PaymentOrder.issue(
                order_id=order_id,
                customer_name=customer_name,
                customer_phone=customer_phone,
                amount=amount,
                unique_code=unique_code,
                bank_account_id=settings.bank_account_id,
                description=description,
                now=now,
            )
            try:
                created = await self.order_repository.create(order, business_date(now, self.tz))
            except UniqueCodeConflictException:
                if attempt == attempts - 1:
                    raise
                continue
            self.events.append(PaymentOrderCreated(
                order_id=created.order_id,
                bank_account_id=created.bank_account_id,
                total_amount=created.total_amount,
                unique_code=created.unique_code,
            ))
            return created
        raise AssertionError("unreachable")  # pragma: no cover

    async def get_order(self, order_id: str) -> PaymentOrder:
        order = await self.order_repository.get_by_order_id(order_id)
        if order is None:
            raise PaymentOrderNotFoundException(order_id)
        return order

    async def transition(
        self,
        order_id: str,
        target: OrderStatus,
        *,
        mutation_id: Optional[str] = None,
        source: str = "manual",
    ) -> Tuple[PaymentOrder, bool]:
        """
        Move an order to `target`.

        Returns (order, applied). Repeating a transition the order already went
        through (PAID -> PAID) is a no-op with applied=False and leaves paid_at and
        mutation_id from the first call. Illegal transitions raise
        InvalidTransitionException and leave the stored row untouched.
        """
        order = await self.get_order(order_id)
        if order.status == target:
            return order, False

        previous = order.status
        now = self.clock()
        if target == OrderStatus.CHECKING:
            order.mark_checking(now)
        elif target == OrderStatus.PAID:
            order.mark_paid(now, mutation_id)
        elif target == OrderStatus.EXPIRED:
            order.mark_expired(now)
        elif target == OrderStatus.CANCELLED:
            order.mark_cancelled(now)
        else:
            raise InvalidTransitionException(order_id, previous.value, target.value)

        updated = await self.order_repository.transition(
            order_id,
            (previous,),
            status=order.status,
            updated_at=order.updated_at,
            paid_at=order.paid_at if target == OrderStatus.PAID else None,
            mutation_id=order.mutation_id if target == OrderStatus.PAID else None,
        )
        if updated is None:
            # Lost the compare-and-swap: somebody changed the row in between.
            current = await self.get_order(order_id)
            if current.status == target:
                return current, False
            raise InvalidTransitionException(
                order_id, current.status.value, target.value, reason="concurrent update"
            )

        self.events.append(self._event_for(updated, source))
        return updated, True

    @staticmethod
    def _event_for(order: PaymentOrder, source: str) -> PaymentOrderEvent:
        common = dict(
            order_id=order.order_id,
            bank_account_id=order.bank_account_id,
            total_amount=order.total_amount,
        )
        if order.status == OrderStatus.PAID:
            return PaymentOrderPaid(mutation_id=order.mutation_id, source=source, **common)
        if order.status == OrderStatus.EXPIRED:
            return PaymentOrderExpired(**common)
        if order.status == OrderStatus.CANCELLED:
            return PaymentOrderCancelled(**common)
        return PaymentOrderChecking(**common)

    async def require_settings(self, bank_account_id: Optional[str] = None) -> BankAccountSettings:
        settings = await self.settings_repository.get_active(bank_account_id)
        if settings is None and bank_account_id is not None:
            settings = await self.settings_repository.get_active()
        if settings is None:
            raise BankSettingsNotConfiguredException(bank_account_id)
        return settings

    def clear_events(self) -> List[PaymentOrderEvent]:
        """Drain and return collected domain events."""
        events = self.events.copy()
        self.events.clear()
        return events
