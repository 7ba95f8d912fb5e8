import pytest

from application.dtos.payments import BankSettingsCreate, BankSettingsUpdate, MutationQuery
from application.services.bank_settings_service import BankSettingsApplicationService
from domain.common.exceptions import DomainValidationException
from domain.payment.entity import BankAccount
from domain.payment.exceptions import BankSettingsNotConfiguredException, BankSettingsNotFoundException
from tests.fakes import aggregator_down


def create_payload(**overrides) -> BankSettingsCreate:
    values = dict(
        access_token="moota-token",
        bank_account_id="acc-1",
        bank_account_name="PT <b>Contoh</b>",
        account_number="1234567890",
        bank_type=" Mandiri ",
        secret_token="whsec-long-enough",
    )
    values.update(overrides)
    return BankSettingsCreate(**values)


@pytest.fixture
def service(store, aggregator_factory) -> BankSettingsApplicationService:
    return BankSettingsApplicationService(store.uow_factory, aggregator_factory)


@pytest.mark.asyncio
async def test_save_normalises_and_keeps_one_active(service, store):
    first = await service.save(create_payload())
    second = await service.save(create_payload(bank_account_id="acc-2"))

    assert first.bank_account_name == "PT Contoh"
    assert first.bank_type == "mandiri"
    assert first.bank_type_name == "Bank Mandiri"
    assert [s.is_active for s in await service.list_settings()] == [True, False]
    assert (await service.get_active()).id == second.id


@pytest.mark.asyncio
async def test_saving_inactive_row_leaves_active_one(service):
    active = await service.save(create_payload())
    await service.save(create_payload(bank_account_id="acc-2", is_active=False))

    assert (await service.get_active()).id == active.id


@pytest.mark.asyncio
async def test_update_activates_and_revalidates(service):
    first = await service.save(create_payload(unique_code_start=100, unique_code_end=200))
    second = await service.save(create_payload(bank_account_id="acc-2"))

    updated = await service.update(first.id, BankSettingsUpdate(is_active=True, unique_code_end=300))
    assert updated.is_active is True
    assert updated.unique_code_end == 300
    assert (await service.get_active()).id == first.id
    assert not [s for s in await service.list_settings() if s.id == second.id][0].is_active

    with pytest.raises(DomainValidationException):
        await service.update(first.id, BankSettingsUpdate(unique_code_end=50))


@pytest.mark.asyncio
async def test_update_and_delete_unknown_settings(service):
    with pytest.raises(BankSettingsNotFoundException):
        await service.update(99, BankSettingsUpdate(bank_type="bri"))
    with pytest.raises(BankSettingsNotFoundException):
        await service.delete(99)


@pytest.mark.asyncio
async def test_get_active_without_settings(service):
    with pytest.raises(BankSettingsNotConfiguredException):
        await service.get_active()


@pytest.mark.asyncio
async def test_connection_test_falls_back_to_active_token(service, aggregator, aggregator_factory):
    await service.save(create_payload(access_token="stored-token"))
    aggregator.accounts = [BankAccount(bank_id="b1", account_number="1", bank_type="bni")] * 2

    result = await service.test_connection()

    assert result.success is True
    assert result.message == "Connection successful! Found 2 bank account(s)."
    assert aggregator_factory.tokens == ["stored-token"]
    assert aggregator.closed == 1


@pytest.mark.asyncio
async def test_connection_test_reports_failure(service, aggregator):
    aggregator.list_error = aggregator_down("Unauthenticated.")

    result = await service.test_connection("bad-token")

    assert result.success is False
    assert result.message == "Unauthenticated."
    assert result.bank_accounts == []
    assert aggregator.closed == 1


@pytest.mark.asyncio
async def test_connection_test_without_any_token(service, aggregator_factory):
    result = await service.test_connection()

    assert result.success is False
    assert aggregator_factory.tokens == []


@pytest.mark.asyncio
async def test_list_mutations_defaults_to_active_account(service, aggregator):
    await service.save(create_payload())

    page = await service.list_mutations(MutationQuery(page=3, per_page=5))

    assert aggregator.queries[0].bank_id == "acc-1"
    assert page.page == 3 and page.per_page == 5
    assert page.items == [] and page.total == 0


@pytest.mark.asyncio
async def test_list_bank_accounts(service, aggregator):
    await service.save(create_payload())
    aggregator.accounts = [BankAccount(bank_id="b1", account_number="1", bank_type="bca", account_name="PT Contoh")]

    accounts = await service.list_bank_accounts()

    assert accounts[0].bank_type_name == "Bank BCA"
    assert accounts[0].account_name == "PT Contoh"


@pytest.mark.asyncio
async def test_save_rejects_account_name_too_long_once_escaped(service):
    with pytest.raises(DomainValidationException) as exc_info:
        await service.save(create_payload(bank_account_name="PT A&B " * 18))

    assert exc_info.value.field == "bank_account_name"
    assert await service.list_settings() == []
