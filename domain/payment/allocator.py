"""
Unique code allocation.

The unique code is the only correlation key between a bank mutation and an order
(the transfer carries no reference), so within one calendar day a code may be
handed out once per receiving account. Codes recycle the next day.
"""
from __future__ import annotations

import random
from datetime import date, datetime, tzinfo, timezone
from typing import Optional, Set

from .entity import BankAccountSettings
from .exceptions import UniqueCodeRangeExhaustedException
from .repository import PaymentOrderRepository


def business_date(now: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar day of `now` in the business timezone."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz or timezone.utc).date()


class UniqueCodeAllocator:
    """Picks a random, unused code inside the settings' [start, end] range."""

    def __init__(
        self,
        order_repository: PaymentOrderRepository,
        *,
        tz: Optional[tzinfo] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.order_repository = order_repository
        self.tz = tz or timezone.utc
        self._rng = rng or random.SystemRandom()

    async def allocate(self, settings: BankAccountSettings, now: datetime) -> int:
        issued = business_date(now, self.tz)
        used = await self.order_repository.used_unique_codes(settings.bank_account_id, issued)
        return self.pick(settings, used)

    def pick(self, settings: BankAccountSettings, used: Set[int]) -> int:
        start, end = settings.unique_code_start, settings.unique_code_end
        size = settings.code_range_size
        in_range = {c for c in used if start <= c <= end}
        if len(in_range) >= size:
            raise UniqueCodeRangeExhaustedException(settings.bank_account_id, start, end)

        for _ in range(size):
            code = self._rng.randint(start, end)
            if code not in in_range:
                return code

        # Dense range: every draw collided, choose among the leftovers directly.
        free = [c for c in range(start, end + 1) if c not in in_range]
        return self._rng.choice(free)
