"""
Payment order aggregate, bank account settings and bank mutations.

Keep this layer free of infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import InvalidAmountException, InvalidTransitionException


ORDER_EXPIRY = timedelta(hours=24)


class OrderStatus(str, Enum):
    """Payment order lifecycle states."""
    PENDING = "PENDING"        # issued, waiting for the customer to transfer
    CHECKING = "CHECKING"      # customer confirmed, verifying against mutations
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.CANCELLED})
OPEN_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CHECKING})

# PENDING -> PAID is allowed: a pushed mutation may arrive before the customer confirms.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.CHECKING,
        OrderStatus.PAID,
        OrderStatus.EXPIRED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.CHECKING: frozenset({
        OrderStatus.PAID,
        OrderStatus.EXPIRED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PAID: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class MutationType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


BANK_TYPE_NAMES = {
    "bca": "Bank BCA",
    "bni": "Bank BNI",
    "bri": "Bank BRI",
    "mandiri": "Bank Mandiri",
    "bsi": "Bank Syariah Indonesia",
    "cimb": "CIMB Niaga",
    "permata": "Bank Permata",
    "danamon": "Bank Danamon",
    "gopay": "GoPay",
    "ovo": "OVO",
    "dana": "DANA",
    "shopeepay": "ShopeePay",
}


def bank_type_name(bank_type: str) -> str:
    """Human readable bank name, falling back to the upper-cased code."""
    if not bank_type:
        return ""
    return BANK_TYPE_NAMES.get(bank_type.lower(), bank_type.upper())


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalise to an aware UTC datetime (naive values are assumed UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PaymentOrder:
    """
    Payment order aggregate root.

    Business rules:
    1. amount > 0, unique_code inside the account's configured range
    2. total_amount = amount + unique_code, fixed at issuance
    3. status changes follow ALLOWED_TRANSITIONS; terminal states never change
    4. expires_at = created_at + 24h
    """

    id: Optional[int]
    order_id: str
    customer_name: str
    customer_phone: str
    amount: int
    unique_code: int
    total_amount: int
    status: OrderStatus
    bank_account_id: str
    mutation_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str) and not isinstance(self.status, OrderStatus):
            self.status = OrderStatus(self.status)
        self._validate_amounts()
        self.created_at = _ensure_utc(self.created_at)
        self.expires_at = _ensure_utc(self.expires_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @classmethod
    def issue(
        cls,
        *,
        order_id: str,
        customer_name: str,
        customer_phone: str,
        amount: int,
        unique_code: int,
        bank_account_id: str,
        now: datetime,
        description: Optional[str] = None,
    ) -> "PaymentOrder":
        """Build a fresh PENDING order; the only place total_amount is computed."""
        now = _ensure_utc(now)
        return cls(
            id=None,
            order_id=order_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            amount=amount,
            unique_code=unique_code,
            total_amount=amount + unique_code,
            status=OrderStatus.PENDING,
            bank_account_id=bank_account_id,
            description=description,
            created_at=now,
            expires_at=now + ORDER_EXPIRY,
            updated_at=now,
        )

    def _validate_amounts(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise InvalidAmountException(self.amount)
        if self.unique_code < 0:
            raise DomainValidationException(
                f"Unique code must not be negative: {self.unique_code}",
                field="unique_code",
            )
        if self.total_amount != self.amount + self.unique_code:
            raise DomainValidationException(
                f"total_amount {self.total_amount} != amount {self.amount} + unique_code {self.unique_code}",
                field="total_amount",
            )

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and _ensure_utc(now) > self.expires_at

    def _guard(self, target: OrderStatus, now: datetime) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionException(self.order_id, self.status.value, target.value)
        if target == OrderStatus.CHECKING and self.is_expired(now):
            raise InvalidTransitionException(
                self.order_id, self.status.value, target.value, reason="order expired"
            )
        if target == OrderStatus.EXPIRED and not self.is_expired(now):
            raise InvalidTransitionException(
                self.order_id, self.status.value, target.value, reason="order not yet expired"
            )

    def mark_checking(self, now: datetime) -> None:
        """Customer says the transfer was made."""
        self._guard(OrderStatus.CHECKING, now)
        self.status = OrderStatus.CHECKING
        self.updated_at = _ensure_utc(now)

    def mark_paid(self, now: datetime, mutation_id: Optional[str] = None) -> None:
        self._guard(OrderStatus.PAID, now)
        self.status = OrderStatus.PAID
        if mutation_id:
            self.mutation_id = mutation_id
        self.paid_at = _ensure_utc(now)
        self.updated_at = self.paid_at

    def mark_expired(self, now: datetime) -> None:
        self._guard(OrderStatus.EXPIRED, now)
        self.status = OrderStatus.EXPIRED
        self.updated_at = _ensure_utc(now)

    def mark_cancelled(self, now: datetime) -> None:
        self._guard(OrderStatus.CANCELLED, now)
        self.status = OrderStatus.CANCELLED
        self.updated_at = _ensure_utc(now)


@dataclass
class BankAccountSettings:
    """
    Receiving bank account plus aggregator credentials.

    At most one row is active; the settings service enforces it on write.
    """

    id: Optional[int]
    access_token: str = field(repr=False)
    bank_account_id: str
    bank_account_name: str
    account_number: str
    bank_type: str
    secret_token: str = field(repr=False)
    unique_code_start: int
    unique_code_end: int
    is_active: bool = False
    webhook_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self._validate_range()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def _validate_range(self) -> None:
        if self.unique_code_start < 0 or self.unique_code_end < self.unique_code_start:
            raise DomainValidationException(
                f"Invalid unique code range [{self.unique_code_start}, {self.unique_code_end}]",
                field="unique_code_end",
            )

    @property
    def code_range_size(self) -> int:
        return self.unique_code_end - self.unique_code_start + 1

    @property
    def bank_type_label(self) -> str:
        return bank_type_name(self.bank_type)


@dataclass(frozen=True)
class BankMutation:
    """A single transaction on a bank account as reported by the aggregator."""

    mutation_id: str
    amount: int
    type: MutationType
    occurred_at: datetime
    bank_account_id: Optional[str] = None
    account_number: Optional[str] = None
    description: str = ""
    balance: Optional[Decimal] = None

    @property
    def is_credit(self) -> bool:
        return self.type == MutationType.CREDIT


@dataclass(frozen=True)
class BankAccount:
    """Account metadata as listed by the aggregator."""

    bank_id: str
    account_number: str
    bank_type: str
    account_name: str = ""
    username: str = ""
    balance: Decimal = Decimal("0")
    is_active: bool = True
