"""
Reconciliation - matches bank mutations to open payment orders.

Two complementary triggers converge on the same guarded transition:
- pull: a waiting customer polls check_payment_status, which asks the aggregator
- push: the aggregator posts mutations to handle_webhook

Matching is by exact total_amount (base amount + unique code) because a transfer
carries no order reference. A reference found in the transfer description wins
when present.
"""
from __future__ import annotations

import asyncio
import re
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from application.dtos.payments import MutationDTO, PaymentCheckResult, WebhookResult
from application.ports.bank_aggregator import AggregatorFactory, BankAggregator
from application.services.payment_order_service import PaymentOrderApplicationService
from application.utils.signature import verify_webhook
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import BankAccountSettings, BankMutation, OrderStatus, PaymentOrder, utcnow
from domain.payment.exceptions import (
    BankSettingsNotConfiguredException,
    InvalidTransitionException,
    MutationAlreadyMatchedException,
    WebhookSignatureException,
)


logger = get_logger(__name__)


class ReconciliationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        aggregator_factory: AggregatorFactory,
        orders: PaymentOrderApplicationService,
        *,
        clock: Callable[[], datetime] = utcnow,
        check_timeout: Optional[float] = None,
        refresh_settle: Optional[float] = None,
        reference_pattern: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        cfg = payment_settings.reconcile
        self._uow_factory = uow_factory
        self._aggregator_factory = aggregator_factory
        self._orders = orders
        self._clock = clock
        self._check_timeout = cfg.check_timeout_seconds if check_timeout is None else check_timeout
        self._refresh_settle = cfg.refresh_settle_seconds if refresh_settle is None else refresh_settle
        self._reference = re.compile(reference_pattern or cfg.order_reference_pattern, re.IGNORECASE)
        self._sleep = sleep

    # ---- pull path ---------------------------------------------------------

    async def check_payment_status(self, order_id: str) -> PaymentCheckResult:
        """
        Verify one order against the aggregator's mutation feed.

        Aggregator trouble (timeouts, refresh failures, HTTP errors) yields
        paid=False so the caller simply polls again.
        """
        order = await self._orders.load(order_id)
        if order.status == OrderStatus.PAID:
            return self._result(order, paid=True)
        if order.is_terminal():
            return self._result(order, paid=False, reason=order.status.value.lower())

        now = self._clock()
        if order.is_expired(now):
            order = await self._move(order, OrderStatus.EXPIRED, source="poll")
            return self._result(order, paid=order.status == OrderStatus.PAID, reason="expired")

        if order.status == OrderStatus.PENDING:
            order = await self._move(order, OrderStatus.CHECKING, source="poll")
            if order.is_terminal():
                return self._result(order, paid=order.status == OrderStatus.PAID)

        settings = await self._settings_for(order.bank_account_id)
        aggregator = self._aggregator_factory(settings.access_token)
        try:
            mutation = await asyncio.wait_for(
                self._find_match(aggregator, settings, order),
                timeout=self._check_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("payment_check_timeout", order_id=order_id, timeout=self._check_timeout)
            return self._result(order, paid=False, reason="timeout")
        except BusinessException as exc:
            logger.warning("payment_check_aggregator_error", order_id=order_id, error=exc.message)
            return self._result(order, paid=False, reason="aggregator_unavailable")
        finally:
            await aggregator.aclose()

        if mutation is None:
            return self._result(order, paid=False, reason="no_matching_mutation")

        try:
            updated = await self._orders.update_status(
                order_id, OrderStatus.PAID, mutation.mutation_id, source="poll"
            )
        except MutationAlreadyMatchedException:
            logger.warning("payment_check_mutation_taken", order_id=order_id, mutation_id=mutation.mutation_id)
            return self._result(order, paid=False, reason="mutation_already_matched")
        except InvalidTransitionException as exc:
            logger.info("payment_order_transition_rejected", order_id=order_id, reason=exc.message)
            current = await self._orders.load(order_id)
            return self._result(current, paid=current.status == OrderStatus.PAID)

        logger.info(
            "payment_check_matched",
            order_id=order_id,
            mutation_id=mutation.mutation_id,
            total_amount=order.total_amount,
        )
        return PaymentCheckResult(
            order_id=order_id,
            paid=updated.status == OrderStatus.PAID.value,
            status=updated.status,
            mutation=MutationDTO.from_entity(mutation),
        )

    async def _move(self, order: PaymentOrder, target: OrderStatus, *, source: str) -> PaymentOrder:
        """Transition, tolerating a concurrent writer; returns the fresh order."""
        try:
            await self._orders.update_status(order.order_id, target, source=source)
        except InvalidTransitionException as exc:
            logger.info("payment_order_transition_rejected", order_id=order.order_id, reason=exc.message)
        return await self._orders.load(order.order_id)

    async def _settings_for(self, bank_account_id: str) -> BankAccountSettings:
        async with self._uow_factory(readonly=True) as uow:
            settings = await uow.settings_repository.get_active(bank_account_id)
            if settings is None:
                settings = await uow.settings_repository.get_active()
        if settings is None:
            raise BankSettingsNotConfiguredException(bank_account_id)
        return settings

    async def _find_match(
        self,
        aggregator: BankAggregator,
        settings: BankAccountSettings,
        order: PaymentOrder,
    ) -> Optional[BankMutation]:
        try:
            await aggregator.refresh_mutations(settings.bank_account_id)
        except BusinessException as exc:
            logger.info("reconcile_refresh_failed", order_id=order.order_id, error=exc.message)
        if self._refresh_settle > 0:
            await self._sleep(self._refresh_settle)

        mutations = await aggregator.search_mutations_by_amount(settings.bank_account_id, order.total_amount)
        for mutation in mutations:
            if not mutation.is_credit or mutation.amount != order.total_amount:
                continue
            if order.created_at and mutation.occurred_at < order.created_at:
                continue
            if await self._bound_elsewhere(mutation.mutation_id, order.order_id):
                continue
            return mutation
        return None

    async def _bound_elsewhere(self, mutation_id: str, order_id: str) -> bool:
        async with self._uow_factory(readonly=True) as uow:
            owner = await uow.order_repository.get_by_mutation_id(mutation_id)
        return owner is not None and owner.order_id != order_id

    @staticmethod
    def _result(order: PaymentOrder, *, paid: bool, reason: Optional[str] = None) -> PaymentCheckResult:
        return PaymentCheckResult(order_id=order.order_id, paid=paid, status=order.status.value, reason=reason)

    # ---- push path ---------------------------------------------------------

    async def handle_webhook(
        self,
        mutations: List[BankMutation],
        *,
        signature: Optional[str] = None,
        secret_token: Optional[str] = None,
        raw_body: bytes = b"",
        parse_errors: Optional[List[str]] = None,
        dedupe: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> WebhookResult:
        """
        Settle orders from a pushed batch.

        Authentication fails closed: without an active secret, or with a bad
        signature, nothing is processed and WebhookSignatureException is raised.
        Each credit mutation is handled in its own transaction and a failure is
        reported in `errors` without stopping the batch.
        `dedupe`, when given, runs after authentication; returning False marks
        the batch as an already-seen delivery, which is acknowledged untouched.
        """
        async with self._uow_factory(readonly=True) as uow:
            settings = await uow.settings_repository.get_active()

        if settings is None or not settings.secret_token:
            logger.warning("webhook_signature_rejected", security_event=True, reason="secret_not_configured")
            raise WebhookSignatureException("Webhook secret not configured")
        if not verify_webhook(
            settings.secret_token, raw_body=raw_body, signature=signature, secret_token=secret_token
        ):
            logger.warning(
                "webhook_signature_rejected",
                security_event=True,
                reason="invalid_signature",
                mutations=len(mutations),
            )
            raise WebhookSignatureException()

        if dedupe is not None and not await dedupe():
            logger.info("webhook_duplicate_ignored", mutations=len(mutations))
            return WebhookResult()

        result = WebhookResult(errors=list(parse_errors or []))
        for mutation in mutations:
            if not mutation.is_credit:
                continue
            try:
                order_id = await self._settle(mutation, settings)
            except InvalidTransitionException as exc:
                # Order left the open states between lookup and update
                logger.info("payment_order_transition_rejected", mutation_id=mutation.mutation_id, reason=exc.message)
                continue
            except BusinessException as exc:
                logger.warning("webhook_mutation_failed", mutation_id=mutation.mutation_id, error=exc.message)
                result.errors.append(f"Failed to process mutation {mutation.mutation_id}: {exc.message}")
                continue
            except Exception as exc:
                logger.error("webhook_mutation_crashed", mutation_id=mutation.mutation_id, exc_info=True)
                result.errors.append(f"Failed to process mutation {mutation.mutation_id}: {exc}")
                continue
            if order_id:
                result.processed.append(order_id)

        logger.info(
            "webhook_processed",
            received=len(mutations),
            processed=len(result.processed),
            errors=len(result.errors),
        )
        return result

    async def _settle(self, mutation: BankMutation, settings: BankAccountSettings) -> Optional[str]:
        """Pay the order this mutation belongs to; None when nothing (new) matched."""
        now = self._clock()
        account = mutation.bank_account_id or settings.bank_account_id
        async with self._uow_factory() as uow:
            owner = await uow.order_repository.get_by_mutation_id(mutation.mutation_id)
            if owner is not None:
                logger.info(
                    "webhook_mutation_already_matched",
                    mutation_id=mutation.mutation_id,
                    order_id=owner.order_id,
                )
                return None

            order = await self._order_by_reference(uow, mutation, now)
            if order is None:
                order = await uow.order_repository.find_oldest_open_by_total(
                    mutation.amount, bank_account_id=account, not_expired_at=now
                )
            if order is None:
                logger.info("webhook_no_matching_order", mutation_id=mutation.mutation_id, amount=mutation.amount)
                return None

            domain = self._orders.domain_service(uow)
            updated, applied = await domain.transition(
                order.order_id, OrderStatus.PAID, mutation_id=mutation.mutation_id, source="webhook"
            )
            events = domain.clear_events()

        await self._orders.publish(events)
        if not applied:
            return None
        logger.info(
            "webhook_order_paid",
            order_id=updated.order_id,
            mutation_id=mutation.mutation_id,
            total_amount=updated.total_amount,
        )
        return updated.order_id

    async def _order_by_reference(
        self, uow: AbstractUnitOfWork, mutation: BankMutation, now: datetime
    ) -> Optional[PaymentOrder]:
        match = self._reference.search(mutation.description or "")
        if not match:
            return None
        candidate = await uow.order_repository.get_by_order_id(match.group(0))
        if candidate is None or not candidate.is_open() or candidate.is_expired(now):
            return None
        if candidate.total_amount != mutation.amount:
            logger.warning(
                "webhook_reference_amount_mismatch",
                order_id=candidate.order_id,
                expected=candidate.total_amount,
                received=mutation.amount,
            )
            return None
        return candidate
