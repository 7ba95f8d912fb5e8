"""SQLAlchemy Unit of Work"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.bank_settings_repository import SQLAlchemyBankSettingsRepository
from infrastructure.repositories.payment_order_repository import SQLAlchemyPaymentOrderRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    One AsyncSession per unit

    Writable units run inside one explicit transaction; read-only units never
    commit. The session is closed on exit, which also discards anything left
    uncommitted.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self.session = self._session_factory()
        self.order_repository = SQLAlchemyPaymentOrderRepository(self.session)
        self.settings_repository = SQLAlchemyBankSettingsRepository(self.session)
        if not self._readonly:
            await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self.session is not None:
                await self.session.close()
            self.session = None
            self.order_repository = None
            self.settings_repository = None

    async def commit(self) -> None:
        if not self._readonly and self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
