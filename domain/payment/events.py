"""
Payment order domain events.

Dataclass events record lifecycle facts for downstream handling (notifications,
projections). They are only emitted by the caller whose guarded transition
actually applied, so each fact is published once.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentOrderEvent:
    order_id: str
    bank_account_id: str
    total_amount: int
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentOrderCreated(PaymentOrderEvent):
    unique_code: int = 0


@dataclass
class PaymentOrderChecking(PaymentOrderEvent):
    pass


@dataclass
class PaymentOrderPaid(PaymentOrderEvent):
    mutation_id: Optional[str] = None
    source: str = "manual"  # poll / webhook / manual


@dataclass
class PaymentOrderExpired(PaymentOrderEvent):
    pass


@dataclass
class PaymentOrderCancelled(PaymentOrderEvent):
    pass
