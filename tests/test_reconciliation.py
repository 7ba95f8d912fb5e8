import asyncio
import json
import random
from datetime import timedelta
from zoneinfo import ZoneInfo

import pytest

from application.dtos.payments import CreateOrderRequest
from application.services.payment_order_service import PaymentOrderApplicationService
from application.services.reconciliation_service import ReconciliationService
from application.utils.signature import sign_body
from domain.payment.allocator import UniqueCodeAllocator
from domain.payment.entity import BankMutation, MutationType, OrderStatus, PaymentOrder
from domain.payment.events import PaymentOrderPaid
from domain.payment.exceptions import BankSettingsNotConfiguredException, WebhookSignatureException
from infrastructure.external.moota.exceptions import BankAggregatorRecoverableError
from tests.fakes import ACCOUNT_ID, SECRET, aggregator_down, credit


JAKARTA = ZoneInfo("Asia/Jakarta")


class FixedCode(random.Random):
    def randint(self, a, b):
        return 123


class Harness:
    """Order service plus reconciler sharing one fake store and event log."""

    def __init__(self, store, clock, aggregator_factory, **kwargs) -> None:
        self.store = store
        self.clock = clock
        self.events = []
        self.orders = PaymentOrderApplicationService(
            store.uow_factory,
            clock=clock,
            tz=JAKARTA,
            allocator_factory=lambda repo, tz: UniqueCodeAllocator(repo, tz=tz, rng=FixedCode()),
            event_sink=self._record,
        )
        kwargs.setdefault("check_timeout", 2.0)
        self.reconciler = ReconciliationService(
            store.uow_factory,
            aggregator_factory,
            self.orders,
            clock=clock,
            refresh_settle=0,
            **kwargs,
        )

    async def _record(self, event) -> None:
        self.events.append(event)

    async def new_order(self, amount: int = 50000):
        return await self.orders.create_order(
            CreateOrderRequest(customer_name="Budi", customer_phone="081234567890", amount=amount)
        )

    def seed(self, order_id: str, amount: int, unique_code: int, **kwargs) -> PaymentOrder:
        order = PaymentOrder.issue(
            order_id=order_id,
            customer_name="Sari",
            customer_phone="081298765432",
            amount=amount,
            unique_code=unique_code,
            bank_account_id=ACCOUNT_ID,
            now=kwargs.pop("now", self.clock()),
        )
        return self.store.orders.put(order)

    async def status(self, order_id: str) -> OrderStatus:
        return (await self.orders.load(order_id)).status

    def paid_events(self):
        return [e for e in self.events if isinstance(e, PaymentOrderPaid)]


@pytest.fixture
def harness(store, clock, settings, aggregator_factory):
    return Harness(store, clock, aggregator_factory)


# ---- pull path -------------------------------------------------------------

@pytest.mark.asyncio
async def test_check_matches_exact_total_after_creation(harness, aggregator, aggregator_factory):
    order = await harness.new_order(50000)
    assert order.unique_code == 123 and order.total_amount == 50123
    aggregator.mutations = [credit("m-1", 50123, harness.clock() + timedelta(minutes=1))]

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is True
    assert result.status == "PAID"
    assert result.mutation.mutation_id == "m-1"
    stored = await harness.orders.load(order.order_id)
    assert stored.status == OrderStatus.PAID
    assert stored.mutation_id == "m-1"
    assert aggregator_factory.tokens == ["moota-token"]
    assert aggregator.refreshed == [ACCOUNT_ID]
    assert aggregator.searches == [(ACCOUNT_ID, 50123)]
    assert aggregator.closed == 1
    assert len(harness.paid_events()) == 1
    assert harness.paid_events()[0].source == "poll"


@pytest.mark.asyncio
async def test_check_without_match_moves_order_to_checking(harness, aggregator):
    order = await harness.new_order()

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is False
    assert result.reason == "no_matching_mutation"
    assert result.status == "CHECKING"
    assert await harness.status(order.order_id) == OrderStatus.CHECKING


@pytest.mark.asyncio
async def test_check_ignores_mutations_before_order_creation(harness, aggregator):
    order = await harness.new_order()
    aggregator.mutations = [credit("m-old", 50123, harness.clock() - timedelta(minutes=1))]

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is False
    assert await harness.status(order.order_id) == OrderStatus.CHECKING


@pytest.mark.asyncio
async def test_check_ignores_debits(harness, aggregator):
    order = await harness.new_order()
    aggregator.mutations = [
        BankMutation(
            mutation_id="m-out",
            amount=50123,
            type=MutationType.DEBIT,
            occurred_at=harness.clock() + timedelta(minutes=1),
        )
    ]

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is False


@pytest.mark.asyncio
async def test_check_already_paid_skips_aggregator(harness, aggregator_factory):
    order = await harness.new_order()
    await harness.orders.update_status(order.order_id, OrderStatus.PAID, "m-1")

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is True
    assert aggregator_factory.tokens == []


@pytest.mark.asyncio
async def test_check_cancelled_order(harness, aggregator_factory):
    order = await harness.new_order()
    await harness.orders.cancel_order(order.order_id)

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is False
    assert result.reason == "cancelled"
    assert aggregator_factory.tokens == []


@pytest.mark.asyncio
async def test_check_expires_stale_order(harness, aggregator, aggregator_factory):
    order = await harness.new_order()
    aggregator.mutations = [credit("m-1", 50123, harness.clock() + timedelta(minutes=1))]
    harness.clock.advance(hours=25)

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is False
    assert result.reason == "expired"
    assert result.status == "EXPIRED"
    assert aggregator_factory.tokens == []


@pytest.mark.asyncio
async def test_check_timeout_reports_not_paid(store, clock, settings, aggregator, aggregator_factory):
    harness = Harness(store, clock, aggregator_factory, check_timeout=0.05)
    order = await harness.new_order()
    aggregator.mutations = [credit("m-1", 50123, clock() + timedelta(minutes=1))]
    aggregator.search_delay = 1.0

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is False
    assert result.reason == "timeout"
    assert aggregator.closed == 1
    assert await harness.status(order.order_id) == OrderStatus.CHECKING


@pytest.mark.asyncio
async def test_check_tolerates_refresh_failure(harness, aggregator):
    order = await harness.new_order()
    aggregator.refresh_error = aggregator_down("refresh quota exceeded")
    aggregator.mutations = [credit("m-1", 50123, harness.clock() + timedelta(minutes=1))]

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is True


@pytest.mark.asyncio
async def test_check_aggregator_failure_reports_not_paid(harness, aggregator):
    order = await harness.new_order()
    aggregator.search_error = BankAggregatorRecoverableError("503 from upstream", status_code=503)

    result = await harness.reconciler.check_payment_status(order.order_id)

    assert result.paid is False
    assert result.reason == "aggregator_unavailable"
    assert aggregator.closed == 1


@pytest.mark.asyncio
async def test_check_skips_mutation_bound_to_another_order(harness, aggregator):
    first = await harness.new_order(50000)
    twin = harness.seed("BK-1760842800000-twin00001", amount=50023, unique_code=100)
    assert twin.total_amount == first.total_amount
    await harness.orders.update_status(first.order_id, OrderStatus.PAID, "m-1")
    aggregator.mutations = [credit("m-1", 50123, harness.clock() + timedelta(minutes=1))]

    result = await harness.reconciler.check_payment_status(twin.order_id)

    assert result.paid is False
    assert result.reason == "no_matching_mutation"


@pytest.mark.asyncio
async def test_check_requires_settings(store, clock, aggregator_factory):
    harness = Harness(store, clock, aggregator_factory)
    harness.seed("BK-1760842800000-orphan001", amount=10000, unique_code=5)

    with pytest.raises(BankSettingsNotConfiguredException):
        await harness.reconciler.check_payment_status("BK-1760842800000-orphan001")


# ---- push path -------------------------------------------------------------

@pytest.mark.asyncio
async def test_webhook_pays_pending_order(harness):
    order = await harness.new_order()
    mutation = credit("m-1", 50123, harness.clock() + timedelta(minutes=2))

    result = await harness.reconciler.handle_webhook([mutation], secret_token=SECRET)

    assert result.processed == [order.order_id]
    assert result.errors == []
    stored = await harness.orders.load(order.order_id)
    assert stored.status == OrderStatus.PAID
    assert stored.mutation_id == "m-1"
    assert harness.paid_events()[0].source == "webhook"


@pytest.mark.asyncio
async def test_webhook_accepts_hmac_signature(harness):
    order = await harness.new_order()
    raw_body = json.dumps([{"mutation_id": "m-1", "amount": 50123, "type": "CR"}]).encode()
    mutation = credit("m-1", 50123, harness.clock())

    result = await harness.reconciler.handle_webhook(
        [mutation], signature=sign_body(SECRET, raw_body), raw_body=raw_body
    )

    assert result.processed == [order.order_id]


@pytest.mark.asyncio
async def test_webhook_for_paid_order_is_a_no_op(harness, aggregator):
    order = await harness.new_order()
    aggregator.mutations = [credit("m-1", 50123, harness.clock() + timedelta(minutes=1))]
    assert (await harness.reconciler.check_payment_status(order.order_id)).paid
    paid = await harness.orders.load(order.order_id)

    same = credit("m-1", 50123, harness.clock() + timedelta(minutes=1))
    other = credit("m-2", 50123, harness.clock() + timedelta(minutes=3))
    result = await harness.reconciler.handle_webhook([same, other], secret_token=SECRET)

    assert result.processed == []
    assert result.errors == []
    again = await harness.orders.load(order.order_id)
    assert again.paid_at == paid.paid_at
    assert again.mutation_id == "m-1"
    assert len(harness.paid_events()) == 1


@pytest.mark.asyncio
async def test_webhook_rejects_wrong_secret(harness):
    order = await harness.new_order()
    mutation = credit("m-1", 50123, harness.clock())

    with pytest.raises(WebhookSignatureException):
        await harness.reconciler.handle_webhook([mutation], secret_token="not-the-secret")
    assert await harness.status(order.order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_rejects_bad_hmac(harness):
    await harness.new_order()
    with pytest.raises(WebhookSignatureException):
        await harness.reconciler.handle_webhook(
            [credit("m-1", 50123, harness.clock())], signature="deadbeef", raw_body=b"[]"
        )


@pytest.mark.asyncio
async def test_webhook_without_settings_fails_closed(store, clock, aggregator_factory):
    harness = Harness(store, clock, aggregator_factory)
    with pytest.raises(WebhookSignatureException):
        await harness.reconciler.handle_webhook([], secret_token=SECRET)


@pytest.mark.asyncio
async def test_webhook_picks_oldest_order_with_same_total(harness):
    older = harness.seed("BK-1760842800000-older0001", amount=50000, unique_code=123,
                         now=harness.clock() - timedelta(minutes=10))
    newer = harness.seed("BK-1760842800000-newer0001", amount=50023, unique_code=100)

    result = await harness.reconciler.handle_webhook([credit("m-1", 50123, harness.clock())], secret_token=SECRET)

    assert result.processed == [older.order_id]
    assert await harness.status(newer.order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_prefers_order_reference_in_description(harness):
    harness.seed("BK-1760842800000-older0001", amount=50000, unique_code=123,
                 now=harness.clock() - timedelta(minutes=10))
    newer = harness.seed("BK-1760842800000-newer0001", amount=50023, unique_code=100)
    mutation = credit("m-1", 50123, harness.clock(), description="TRF BK-1760842800000-newer0001 SARI")

    result = await harness.reconciler.handle_webhook([mutation], secret_token=SECRET)

    assert result.processed == [newer.order_id]


@pytest.mark.asyncio
async def test_webhook_reference_with_wrong_amount_falls_back_to_total(harness):
    target = harness.seed("BK-1760842800000-target001", amount=50000, unique_code=123)
    harness.seed("BK-1760842800000-other0001", amount=70000, unique_code=7)
    mutation = credit("m-1", 50123, harness.clock(), description="BK-1760842800000-other0001")

    result = await harness.reconciler.handle_webhook([mutation], secret_token=SECRET)

    assert result.processed == [target.order_id]


@pytest.mark.asyncio
async def test_webhook_does_not_pay_expired_orders(harness):
    order = await harness.new_order()
    harness.clock.advance(hours=25)

    result = await harness.reconciler.handle_webhook([credit("m-1", 50123, harness.clock())], secret_token=SECRET)

    assert result.processed == []
    assert await harness.status(order.order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_reports_failures_per_mutation(harness, store):
    order = await harness.new_order()
    store.orders.fail_totals = {70000}
    mutations = [credit("m-x", 70000, harness.clock()), credit("m-1", 50123, harness.clock())]

    result = await harness.reconciler.handle_webhook(
        mutations, secret_token=SECRET, parse_errors=["Failed to parse mutation #2: mutation id missing"]
    )

    assert result.processed == [order.order_id]
    assert result.errors == [
        "Failed to parse mutation #2: mutation id missing",
        "Failed to process mutation m-x: database unavailable",
    ]


@pytest.mark.asyncio
async def test_webhook_skips_debits(harness):
    await harness.new_order()
    debit = BankMutation(mutation_id="m-out", amount=50123, type=MutationType.DEBIT, occurred_at=harness.clock())

    result = await harness.reconciler.handle_webhook([debit], secret_token=SECRET)

    assert result.processed == [] and result.errors == []


@pytest.mark.asyncio
async def test_webhook_duplicate_delivery_is_acknowledged_untouched(harness):
    order = await harness.new_order()
    calls = []

    async def seen_before() -> bool:
        calls.append(1)
        return False

    result = await harness.reconciler.handle_webhook(
        [credit("m-1", 50123, harness.clock())], secret_token=SECRET, dedupe=seen_before
    )

    assert calls == [1]
    assert result.processed == [] and result.errors == []
    assert await harness.status(order.order_id) == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_dedupe_runs_after_authentication(harness):
    calls = []

    async def first_delivery() -> bool:
        calls.append(1)
        return True

    with pytest.raises(WebhookSignatureException):
        await harness.reconciler.handle_webhook([], secret_token="forged", dedupe=first_delivery)
    assert calls == []


# ---- both paths ------------------------------------------------------------

@pytest.mark.asyncio
async def test_poll_and_webhook_racing_settle_once(harness, aggregator):
    order = await harness.new_order()
    mutation = credit("m-1", 50123, harness.clock() + timedelta(minutes=1))
    aggregator.mutations = [mutation]
    aggregator.search_delay = 0.01

    check, pushed = await asyncio.gather(
        harness.reconciler.check_payment_status(order.order_id),
        harness.reconciler.handle_webhook([mutation], secret_token=SECRET),
    )

    assert check.paid is True
    assert pushed.processed == [order.order_id]
    assert await harness.status(order.order_id) == OrderStatus.PAID
    assert len(harness.paid_events()) == 1
