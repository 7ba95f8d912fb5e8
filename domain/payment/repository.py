"""
Payment order and bank settings repository interfaces.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Iterable, Optional, List, Set

from .entity import PaymentOrder, BankAccountSettings, OrderStatus


class PaymentOrderRepository(ABC):
    """Payment order persistence. Implementations must enforce uniqueness of
    order_id, (bank_account_id, issued_date, unique_code) and mutation_id."""

    @abstractmethod
    async def create(self, order: PaymentOrder, issued_date: date) -> PaymentOrder:
        """Insert a new order.

        Raises PaymentOrderAlreadyExistsException on a duplicate order_id and
        UniqueCodeConflictException when the day's code is already taken.
        """
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[PaymentOrder]:
        pass

    @abstractmethod
    async def get_by_mutation_id(self, mutation_id: str) -> Optional[PaymentOrder]:
        pass

    @abstractmethod
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
        """Compare-and-swap status update.

        Applies only if the stored status is one of expected_statuses. Returns the
        updated order, or None when the guard did not match (someone else won).
        """
        pass

    @abstractmethod
    async def list_open(self, skip: int = 0, limit: int = 100) -> List[PaymentOrder]:
        """PENDING/CHECKING orders, newest first."""
        pass

    @abstractmethod
    async def list_expired_open(self, now: datetime, limit: int = 500) -> List[PaymentOrder]:
        """Open orders whose expires_at is before now."""
        pass

    @abstractmethod
    async def used_unique_codes(self, bank_account_id: str, issued_date: date) -> Set[int]:
        pass

    @abstractmethod
    async def find_oldest_open_by_total(
        self,
        total_amount: int,
        *,
        bank_account_id: Optional[str] = None,
        not_expired_at: Optional[datetime] = None,
    ) -> Optional[PaymentOrder]:
        pass


class BankSettingsRepository(ABC):
    """Bank account settings persistence."""

    @abstractmethod
    async def create(self, settings: BankAccountSettings) -> BankAccountSettings:
        pass

    @abstractmethod
    async def get_by_id(self, settings_id: int) -> Optional[BankAccountSettings]:
        pass

    @abstractmethod
    async def get_active(self, bank_account_id: Optional[str] = None) -> Optional[BankAccountSettings]:
        pass

    @abstractmethod
    async def list_all(self) -> List[BankAccountSettings]:
        """All settings, newest first."""
        pass

    @abstractmethod
    async def update(self, settings: BankAccountSettings) -> BankAccountSettings:
        pass

    @abstractmethod
    async def deactivate_all(self, bank_account_id: Optional[str] = None) -> int:
        """Deactivate every active row (optionally one account); returns rows touched."""
        pass

    @abstractmethod
    async def delete(self, settings_id: int) -> bool:
        pass
