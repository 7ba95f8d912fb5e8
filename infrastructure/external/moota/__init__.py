"""
Factory for bank aggregator clients.
"""
from __future__ import annotations

from zoneinfo import ZoneInfo

from application.ports.bank_aggregator import BankAggregator
from core.settings import payment_settings

from .client import MootaClient


def get_bank_aggregator(access_token: str) -> BankAggregator:
    return MootaClient(
        access_token,
        base_url=payment_settings.moota.base_url,
        timeouts=payment_settings.timeouts.model_dump(),
        retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        user_agent=payment_settings.moota.user_agent,
        tz=ZoneInfo(payment_settings.orders.business_timezone),
    )


__all__ = ["MootaClient", "get_bank_aggregator"]
