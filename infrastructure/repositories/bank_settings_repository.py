"""
Bank account settings repository - SQLAlchemy implementation
"""
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.payment.entity import BankAccountSettings, utcnow
from domain.payment.exceptions import BankSettingsNotFoundException
from domain.payment.repository import BankSettingsRepository
from infrastructure.models.bank_settings import BankAccountSettingsModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyBankSettingsRepository(BankSettingsRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: BankAccountSettingsModel) -> BankAccountSettings:
        return BankAccountSettings(
            id=model.id,
            access_token=model.access_token,
            bank_account_id=model.bank_account_id,
            bank_account_name=model.bank_account_name,
            account_number=model.account_number,
            bank_type=model.bank_type,
            secret_token=model.secret_token,
            unique_code_start=model.unique_code_start,
            unique_code_end=model.unique_code_end,
            is_active=bool(model.is_active),
            webhook_url=model.webhook_url,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _apply(self, model: BankAccountSettingsModel, entity: BankAccountSettings) -> None:
        model.access_token = entity.access_token
        model.bank_account_id = entity.bank_account_id
        model.bank_account_name = entity.bank_account_name
        model.account_number = entity.account_number
        model.bank_type = entity.bank_type
        model.secret_token = entity.secret_token
        model.unique_code_start = entity.unique_code_start
        model.unique_code_end = entity.unique_code_end
        model.is_active = entity.is_active
        model.webhook_url = entity.webhook_url

    async def create(self, settings: BankAccountSettings) -> BankAccountSettings:
        db_settings = BankAccountSettingsModel()
        self._apply(db_settings, settings)
        self.session.add(db_settings)
        await self.session.flush()
        await self.session.refresh(db_settings)
        logger.info(
            "bank_settings_created",
            settings_id=db_settings.id,
            bank_account_id=db_settings.bank_account_id,
            is_active=db_settings.is_active,
        )
        return self._to_entity(db_settings)

    async def get_by_id(self, settings_id: int) -> Optional[BankAccountSettings]:
        db_settings = await self.session.get(BankAccountSettingsModel, settings_id, populate_existing=True)
        return self._to_entity(db_settings) if db_settings else None

    async def get_active(self, bank_account_id: Optional[str] = None) -> Optional[BankAccountSettings]:
        query = select(BankAccountSettingsModel).where(BankAccountSettingsModel.is_active.is_(True))
        if bank_account_id:
            query = query.where(BankAccountSettingsModel.bank_account_id == bank_account_id)
        query = query.order_by(
            BankAccountSettingsModel.updated_at.desc(), BankAccountSettingsModel.id.desc()
        ).limit(1).execution_options(populate_existing=True)
        result = await self.session.execute(query)
        db_settings = result.scalars().first()
        return self._to_entity(db_settings) if db_settings else None

    async def list_all(self) -> List[BankAccountSettings]:
        result = await self.session.execute(
            select(BankAccountSettingsModel).order_by(
                BankAccountSettingsModel.created_at.desc(), BankAccountSettingsModel.id.desc()
            )
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, settings: BankAccountSettings) -> BankAccountSettings:
        db_settings = await self.session.get(BankAccountSettingsModel, settings.id)
        if db_settings is None:
            raise BankSettingsNotFoundException(settings.id)
        self._apply(db_settings, settings)
        db_settings.updated_at = utcnow()
        await self.session.flush()
        await self.session.refresh(db_settings)
        return self._to_entity(db_settings)

    async def deactivate_all(self, bank_account_id: Optional[str] = None) -> int:
        stmt = update(BankAccountSettingsModel).where(BankAccountSettingsModel.is_active.is_(True))
        if bank_account_id:
            stmt = stmt.where(BankAccountSettingsModel.bank_account_id == bank_account_id)
        stmt = stmt.values(is_active=False, updated_at=utcnow()).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def delete(self, settings_id: int) -> bool:
        result = await self.session.execute(
            delete(BankAccountSettingsModel).where(BankAccountSettingsModel.id == settings_id)
        )
        return bool(result.rowcount)
