from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from domain.payment.entity import OrderStatus, PaymentOrder
from domain.payment.exceptions import (
    MutationAlreadyMatchedException,
    PaymentOrderAlreadyExistsException,
    UniqueCodeConflictException,
)
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from tests.fakes import ACCOUNT_ID, make_settings


DAY = date(2026, 10, 19)


@pytest_asyncio.fixture
async def uow_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(bind=engine, expire_on_commit=False)

    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(sessions, readonly=readonly)

    yield factory
    await engine.dispose()


def issue(order_id: str, now, *, amount: int = 50000, code: int = 123) -> PaymentOrder:
    return PaymentOrder.issue(
        order_id=order_id,
        customer_name="Budi",
        customer_phone="081234567890",
        amount=amount,
        unique_code=code,
        bank_account_id=ACCOUNT_ID,
        now=now,
    )


@pytest.mark.asyncio
async def test_create_and_read_back(uow_factory, clock):
    async with uow_factory() as uow:
        created = await uow.order_repository.create(issue("BK-1", clock()), DAY)

    async with uow_factory(readonly=True) as uow:
        loaded = await uow.order_repository.get_by_order_id("BK-1")
        used = await uow.order_repository.used_unique_codes(ACCOUNT_ID, DAY)

    assert created.id is not None
    assert loaded.total_amount == 50123
    assert loaded.status == OrderStatus.PENDING
    assert loaded.created_at == clock()
    assert loaded.expires_at == clock() + timedelta(hours=24)
    assert used == {123}


@pytest.mark.asyncio
async def test_same_code_same_day_conflicts(uow_factory, clock):
    async with uow_factory() as uow:
        await uow.order_repository.create(issue("BK-1", clock()), DAY)

    with pytest.raises(UniqueCodeConflictException):
        async with uow_factory() as uow:
            await uow.order_repository.create(issue("BK-2", clock(), amount=60000), DAY)

    async with uow_factory() as uow:
        await uow.order_repository.create(issue("BK-3", clock()), DAY + timedelta(days=1))


@pytest.mark.asyncio
async def test_duplicate_order_id_conflicts(uow_factory, clock):
    async with uow_factory() as uow:
        await uow.order_repository.create(issue("BK-1", clock()), DAY)

    with pytest.raises(PaymentOrderAlreadyExistsException):
        async with uow_factory() as uow:
            await uow.order_repository.create(issue("BK-1", clock(), code=5), DAY)


@pytest.mark.asyncio
async def test_transition_is_compare_and_swap(uow_factory, clock):
    async with uow_factory() as uow:
        await uow.order_repository.create(issue("BK-1", clock()), DAY)

    async with uow_factory() as uow:
        moved = await uow.order_repository.transition(
            "BK-1", (OrderStatus.PENDING,), status=OrderStatus.CHECKING, updated_at=clock()
        )
    assert moved.status == OrderStatus.CHECKING

    async with uow_factory() as uow:
        stale = await uow.order_repository.transition(
            "BK-1", (OrderStatus.PENDING,), status=OrderStatus.CANCELLED, updated_at=clock()
        )
    assert stale is None

    async with uow_factory() as uow:
        paid = await uow.order_repository.transition(
            "BK-1",
            (OrderStatus.CHECKING,),
            status=OrderStatus.PAID,
            updated_at=clock(),
            paid_at=clock(),
            mutation_id="m-1",
        )
    assert paid.status == OrderStatus.PAID
    assert paid.mutation_id == "m-1"
    assert paid.paid_at == clock()


@pytest.mark.asyncio
async def test_mutation_id_binds_once(uow_factory, clock):
    async with uow_factory() as uow:
        await uow.order_repository.create(issue("BK-1", clock()), DAY)
        await uow.order_repository.create(issue("BK-2", clock(), code=7), DAY)

    async with uow_factory() as uow:
        await uow.order_repository.transition(
            "BK-1", (OrderStatus.PENDING,), status=OrderStatus.PAID, updated_at=clock(), mutation_id="m-1"
        )

    with pytest.raises(MutationAlreadyMatchedException):
        async with uow_factory() as uow:
            await uow.order_repository.transition(
                "BK-2", (OrderStatus.PENDING,), status=OrderStatus.PAID, updated_at=clock(), mutation_id="m-1"
            )

    async with uow_factory(readonly=True) as uow:
        assert (await uow.order_repository.get_by_mutation_id("m-1")).order_id == "BK-1"
        assert (await uow.order_repository.get_by_order_id("BK-2")).status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_open_order_queries(uow_factory, clock):
    start = clock()
    async with uow_factory() as uow:
        repo = uow.order_repository
        await repo.create(issue("BK-old", start - timedelta(hours=30), code=1), DAY - timedelta(days=1))
        await repo.create(issue("BK-a", start - timedelta(minutes=10), code=2), DAY)
        await repo.create(issue("BK-b", start, amount=50121, code=4), DAY)

    async with uow_factory(readonly=True) as uow:
        repo = uow.order_repository
        expired = await repo.list_expired_open(start)
        oldest = await repo.find_oldest_open_by_total(50125, bank_account_id=ACCOUNT_ID, not_expired_at=start)
        open_orders = await repo.list_open()

    assert [o.order_id for o in expired] == ["BK-old"]
    assert oldest.order_id == "BK-b"
    assert [o.order_id for o in open_orders] == ["BK-b", "BK-a", "BK-old"]


@pytest.mark.asyncio
async def test_settings_activation(uow_factory):
    async with uow_factory() as uow:
        first = await uow.settings_repository.create(make_settings(bank_account_id="acc-1"))
        assert await uow.settings_repository.deactivate_all() == 1
        second = await uow.settings_repository.create(make_settings(bank_account_id="acc-2"))

    async with uow_factory(readonly=True) as uow:
        active = await uow.settings_repository.get_active()
        everything = await uow.settings_repository.list_all()
        stored_first = await uow.settings_repository.get_by_id(first.id)

    assert active.id == second.id
    assert stored_first.is_active is False
    assert {s.bank_account_id for s in everything} == {"acc-1", "acc-2"}
    assert active.secret_token == make_settings().secret_token
