"""
Bank settings application service - receiving account configuration and
read-only passthroughs to the aggregator.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, List, Optional

from application.dtos.payments import (
    BankAccountDTO,
    BankSettingsCreate,
    BankSettingsResponse,
    BankSettingsUpdate,
    ConnectionTestResult,
    MutationDTO,
    MutationPage,
    MutationQuery,
)
from application.ports.bank_aggregator import AggregatorFactory
from application.utils.sanitize import sanitize_text
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import BankAccountSettings
from domain.payment.exceptions import BankSettingsNotConfiguredException, BankSettingsNotFoundException


logger = get_logger(__name__)


class BankSettingsApplicationService:
    """Keeps at most one active settings row: activating one deactivates the rest."""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork], aggregator_factory: AggregatorFactory):
        self._uow_factory = uow_factory
        self._aggregator_factory = aggregator_factory

    async def save(self, data: BankSettingsCreate) -> BankSettingsResponse:
        entity = BankAccountSettings(
            id=None,
            access_token=data.access_token.strip(),
            bank_account_id=data.bank_account_id.strip(),
            bank_account_name=sanitize_text(data.bank_account_name, max_length=128, field="bank_account_name"),
            account_number=data.account_number.strip(),
            bank_type=data.bank_type.strip().lower(),
            secret_token=data.secret_token,
            unique_code_start=data.unique_code_start,
            unique_code_end=data.unique_code_end,
            is_active=data.is_active,
            webhook_url=data.webhook_url,
        )
        async with self._uow_factory() as uow:
            if entity.is_active:
                deactivated = await uow.settings_repository.deactivate_all()
                if deactivated:
                    logger.info("bank_settings_deactivated", count=deactivated)
            created = await uow.settings_repository.create(entity)
        return BankSettingsResponse.from_entity(created)

    async def update(self, settings_id: int, data: BankSettingsUpdate) -> BankSettingsResponse:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "bank_account_name" in changes:
            changes["bank_account_name"] = sanitize_text(
                changes["bank_account_name"], max_length=128, field="bank_account_name"
            )
        if "bank_type" in changes:
            changes["bank_type"] = changes["bank_type"].strip().lower()

        async with self._uow_factory() as uow:
            current = await uow.settings_repository.get_by_id(settings_id)
            if current is None:
                raise BankSettingsNotFoundException(settings_id)
            # replace() re-runs __post_init__, so the code range is re-validated
            updated = replace(current, **changes)
            if updated.is_active and not current.is_active:
                await uow.settings_repository.deactivate_all()
            saved = await uow.settings_repository.update(updated)
        logger.info("bank_settings_updated", settings_id=settings_id, fields=sorted(changes))
        return BankSettingsResponse.from_entity(saved)

    async def list_settings(self) -> List[BankSettingsResponse]:
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.settings_repository.list_all()
        return [BankSettingsResponse.from_entity(s) for s in rows]

    async def get_active(self) -> BankSettingsResponse:
        return BankSettingsResponse.from_entity(await self._require_active())

    async def delete(self, settings_id: int) -> None:
        async with self._uow_factory() as uow:
            if not await uow.settings_repository.delete(settings_id):
                raise BankSettingsNotFoundException(settings_id)
        logger.info("bank_settings_deleted", settings_id=settings_id)

    async def test_connection(self, access_token: Optional[str] = None) -> ConnectionTestResult:
        """
        List aggregator accounts with a temporary token (never persisted) or,
        when none is given, the active settings' token. Never raises.
        """
        if not access_token:
            async with self._uow_factory(readonly=True) as uow:
                active = await uow.settings_repository.get_active()
            if active is None:
                return ConnectionTestResult(success=False, message="Bank settings not configured")
            access_token = active.access_token

        aggregator = self._aggregator_factory(access_token)
        try:
            accounts = await aggregator.list_bank_accounts()
        except BusinessException as exc:
            logger.info("bank_connection_test_failed", provider=aggregator.provider, error=exc.message)
            return ConnectionTestResult(success=False, message=exc.message)
        finally:
            await aggregator.aclose()
        return ConnectionTestResult(
            success=True,
            message=f"Connection successful! Found {len(accounts)} bank account(s).",
            bank_accounts=[BankAccountDTO.from_entity(a) for a in accounts],
        )

    async def list_bank_accounts(self) -> List[BankAccountDTO]:
        settings = await self._require_active()
        aggregator = self._aggregator_factory(settings.access_token)
        try:
            accounts = await aggregator.list_bank_accounts()
        finally:
            await aggregator.aclose()
        return [BankAccountDTO.from_entity(a) for a in accounts]

    async def list_mutations(self, query: MutationQuery) -> MutationPage:
        settings = await self._require_active()
        if not query.bank_id:
            query = query.model_copy(update={"bank_id": settings.bank_account_id})
        aggregator = self._aggregator_factory(settings.access_token)
        try:
            items, total = await aggregator.list_mutations(query)
        finally:
            await aggregator.aclose()
        return MutationPage(
            items=[MutationDTO.from_entity(m) for m in items],
            total=total,
            page=query.page,
            per_page=query.per_page,
        )

    async def _require_active(self, bank_account_id: Optional[str] = None) -> BankAccountSettings:
        async with self._uow_factory(readonly=True) as uow:
            settings = await uow.settings_repository.get_active(bank_account_id)
        if settings is None:
            raise BankSettingsNotConfiguredException(bank_account_id)
        return settings
