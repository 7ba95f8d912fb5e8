"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Every key can be overridden as PAYMENT__<GROUP>__<KEY>, for example
PAYMENT__MOOTA__BASE_URL or PAYMENT__RECONCILE__CHECK_TIMEOUT_SECONDS.
"""
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 3.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class MootaSettings(BaseModel):
    base_url: str = "https://app.moota.co/api/v2"
    user_agent: str = "bank-reconcile/1.0"


class ReconcileSettings(BaseModel):
    # Upper bound for one pull-path run against the aggregator
    check_timeout_seconds: float = 15.0
    # Pause after asking the aggregator to refresh before searching mutations
    refresh_settle_seconds: float = 2.0
    # Order ids embedded in a transfer description take precedence over amount matching
    order_reference_pattern: str = r"BK-\d+-[a-z0-9]+"


class OrderSettings(BaseModel):
    business_timezone: str = "Asia/Jakarta"
    unique_code_conflict_retries: int = 3
    order_id_prefix: str = "BK"
    sweep_batch_size: int = 500


class WebhookSettings(BaseModel):
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks
    dedupe_ttl_seconds: int = 300
    signature_header: str = "Signature"
    secret_header: str = "X-Secret-Token"


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    moota: MootaSettings = Field(default_factory=MootaSettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
