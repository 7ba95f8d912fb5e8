import random
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from application.dtos.payments import CreateOrderRequest
from application.services.payment_order_service import PaymentOrderApplicationService, generate_order_id
from domain.payment.allocator import UniqueCodeAllocator, business_date
from domain.payment.exceptions import (
    BankSettingsNotConfiguredException,
    PaymentOrderAlreadyExistsException,
    UniqueCodeConflictException,
    UniqueCodeRangeExhaustedException,
)
from tests.fakes import FakeOrderRepository, make_settings


JAKARTA = ZoneInfo("Asia/Jakarta")


class StuckRandom(random.Random):
    """Always draws the same value, forcing the dense-range fallback."""

    def __init__(self, value: int) -> None:
        super().__init__(0)
        self.value = value

    def randint(self, a, b):
        return self.value


def order_request(amount: int = 50000, **kwargs) -> CreateOrderRequest:
    return CreateOrderRequest(customer_name="Budi", customer_phone="081234567890", amount=amount, **kwargs)


def make_service(store, clock, **kwargs) -> PaymentOrderApplicationService:
    return PaymentOrderApplicationService(store.uow_factory, clock=clock, tz=JAKARTA, **kwargs)


def test_business_date_uses_jakarta_calendar():
    late_utc = datetime(2026, 10, 19, 17, 30, tzinfo=timezone.utc)
    assert business_date(late_utc, JAKARTA).isoformat() == "2026-10-20"
    assert business_date(late_utc).isoformat() == "2026-10-19"


def test_pick_skips_used_codes():
    allocator = UniqueCodeAllocator(FakeOrderRepository(), rng=random.Random(42))
    settings = make_settings(unique_code_start=10, unique_code_end=20)
    used = set(range(10, 20))

    assert allocator.pick(settings, used) == 20


def test_pick_dense_range_falls_back_to_free_codes():
    allocator = UniqueCodeAllocator(FakeOrderRepository(), rng=StuckRandom(5))
    settings = make_settings(unique_code_start=1, unique_code_end=9)

    assert allocator.pick(settings, {5}) != 5


def test_pick_ignores_codes_outside_range():
    allocator = UniqueCodeAllocator(FakeOrderRepository())
    settings = make_settings(unique_code_start=1, unique_code_end=1)

    assert allocator.pick(settings, {0, 2, 500}) == 1


@pytest.mark.asyncio
async def test_range_exhaustion_after_every_code_is_issued(store, clock):
    store.settings.add(make_settings(unique_code_start=1, unique_code_end=3))
    service = make_service(store, clock)

    codes = set()
    for _ in range(3):
        order = await service.create_order(order_request())
        codes.add(order.unique_code)
        assert order.total_amount == order.amount + order.unique_code
    assert codes == {1, 2, 3}

    with pytest.raises(UniqueCodeRangeExhaustedException):
        await service.create_order(order_request())
    assert len(store.orders.rows) == 3


@pytest.mark.asyncio
async def test_codes_recycle_on_the_next_business_day(store, clock):
    store.settings.add(make_settings(unique_code_start=7, unique_code_end=7))
    service = make_service(store, clock)

    first = await service.create_order(order_request())
    clock.advance(days=1)
    second = await service.create_order(order_request())

    assert first.unique_code == second.unique_code == 7


@pytest.mark.asyncio
async def test_codes_are_tracked_per_account(store, clock):
    store.settings.add(make_settings(bank_account_id="acc-a", unique_code_start=1, unique_code_end=1))
    service = make_service(store, clock)
    await service.create_order(order_request())

    store.settings.rows.clear()
    store.settings.add(make_settings(bank_account_id="acc-b", unique_code_start=1, unique_code_end=1))
    other = await service.create_order(order_request())

    assert other.bank_account_id == "acc-b"
    assert other.unique_code == 1


@pytest.mark.asyncio
async def test_code_conflict_is_retried(store, clock, settings):
    store.orders.inject_code_conflicts = 2
    service = make_service(store, clock, conflict_retries=3)

    order = await service.create_order(order_request())

    assert order.status == "PENDING"
    assert len(store.orders.rows) == 1


@pytest.mark.asyncio
async def test_code_conflict_gives_up_after_retries(store, clock, settings):
    store.orders.inject_code_conflicts = 5
    service = make_service(store, clock, conflict_retries=1)

    with pytest.raises(UniqueCodeConflictException):
        await service.create_order(order_request())
    assert store.orders.rows == {}


@pytest.mark.asyncio
async def test_create_order_requires_active_settings(store, clock):
    service = make_service(store, clock)
    with pytest.raises(BankSettingsNotConfiguredException):
        await service.create_order(order_request())


@pytest.mark.asyncio
async def test_create_order_uses_injected_allocator(store, clock, settings):
    service = make_service(
        store,
        clock,
        allocator_factory=lambda repo, tz: UniqueCodeAllocator(repo, tz=tz, rng=StuckRandom(123)),
    )

    order = await service.create_order(order_request(50000))

    assert order.unique_code == 123
    assert order.total_amount == 50123


@pytest.mark.asyncio
async def test_duplicate_order_id_is_rejected(store, clock, settings):
    service = make_service(store, clock)
    await service.create_order(order_request(order_id="INV-0001"))

    with pytest.raises(PaymentOrderAlreadyExistsException):
        await service.create_order(order_request(order_id="INV-0001"))


def test_generated_order_id_shape():
    now = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
    order_id = generate_order_id("BK", now)

    assert re.fullmatch(r"BK-\d{13}-[a-z0-9]{9}", order_id)
    assert order_id.split("-")[1] == str(int(now.timestamp() * 1000))
    assert generate_order_id("BK", now) != order_id
