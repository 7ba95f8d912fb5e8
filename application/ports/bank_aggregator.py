"""
Bank aggregator port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters
(Moota today). Implementations are bound to one access token.
"""
from __future__ import annotations

from typing import Callable, List, Protocol, Tuple, runtime_checkable

from application.dtos.payments import MutationQuery
from domain.payment.entity import BankAccount, BankMutation


@runtime_checkable
class BankAggregator(Protocol):
    """Read access to bank accounts and their mutation feed."""

    provider: str

    async def list_bank_accounts(self) -> List[BankAccount]: ...

    async def refresh_mutations(self, bank_id: str) -> None: ...

    async def search_mutations_by_amount(self, bank_id: str, amount: int) -> List[BankMutation]: ...

    async def list_mutations(self, query: MutationQuery) -> Tuple[List[BankMutation], int]: ...

    async def aclose(self) -> None: ...


# Builds an aggregator client for the given access token.
AggregatorFactory = Callable[[str], BankAggregator]
