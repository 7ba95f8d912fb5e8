"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from domain.payment.entity import BankAccount, BankAccountSettings, BankMutation, PaymentOrder, bank_type_name


PHONE_PATTERN = r"^\+?[0-9][0-9\- ]{6,19}$"
ORDER_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_\-]{2,63}$"


# ---- Orders ---------------------------------------------------------------

class CreateOrderRequest(BaseModel):
    customer_name: str = Field(min_length=1, max_length=100)
    customer_phone: str = Field(pattern=PHONE_PATTERN)
    amount: int = Field(gt=0, description="Base amount in whole Rupiah")
    description: Optional[str] = Field(default=None, max_length=500)
    order_id: Optional[str] = Field(default=None, pattern=ORDER_ID_PATTERN)

    @field_validator("customer_name", "customer_phone")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: str
    customer_name: str
    customer_phone: str
    amount: int
    unique_code: int
    total_amount: int
    status: str
    bank_account_id: str
    mutation_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order: PaymentOrder) -> "OrderResponse":
        return cls(
            order_id=order.order_id,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            amount=order.amount,
            unique_code=order.unique_code,
            total_amount=order.total_amount,
            status=order.status.value,
            bank_account_id=order.bank_account_id,
            mutation_id=order.mutation_id,
            description=order.description,
            created_at=order.created_at,
            expires_at=order.expires_at,
            paid_at=order.paid_at,
            updated_at=order.updated_at,
        )


class MutationDTO(BaseModel):
    mutation_id: str
    amount: int
    type: str
    occurred_at: datetime
    bank_account_id: Optional[str] = None
    account_number: Optional[str] = None
    description: str = ""
    balance: Optional[Decimal] = None

    @classmethod
    def from_entity(cls, m: BankMutation) -> "MutationDTO":
        return cls(
            mutation_id=m.mutation_id,
            amount=m.amount,
            type=m.type.value,
            occurred_at=m.occurred_at,
            bank_account_id=m.bank_account_id,
            account_number=m.account_number,
            description=m.description,
            balance=m.balance,
        )


class PaymentCheckResult(BaseModel):
    order_id: str
    paid: bool
    status: str
    mutation: Optional[MutationDTO] = None
    reason: Optional[str] = None


class WebhookResult(BaseModel):
    processed: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class SweepResult(BaseModel):
    expired: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


# ---- Bank settings --------------------------------------------------------

class BankSettingsCreate(BaseModel):
    access_token: str = Field(min_length=1)
    bank_account_id: str = Field(min_length=1, max_length=64)
    bank_account_name: str = Field(min_length=1, max_length=128)
    account_number: str = Field(min_length=1, max_length=64)
    bank_type: str = Field(min_length=1, max_length=32)
    secret_token: str = Field(min_length=8)
    unique_code_start: int = Field(default=1, ge=0)
    unique_code_end: int = Field(default=999, ge=0)
    is_active: bool = True
    webhook_url: Optional[str] = Field(default=None, max_length=512)

    @model_validator(mode="after")
    def _check_range(self):
        if self.unique_code_end < self.unique_code_start:
            raise ValueError("unique_code_end must be >= unique_code_start")
        return self


class BankSettingsUpdate(BaseModel):
    access_token: Optional[str] = Field(default=None, min_length=1)
    bank_account_name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    account_number: Optional[str] = Field(default=None, min_length=1, max_length=64)
    bank_type: Optional[str] = Field(default=None, min_length=1, max_length=32)
    secret_token: Optional[str] = Field(default=None, min_length=8)
    unique_code_start: Optional[int] = Field(default=None, ge=0)
    unique_code_end: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    webhook_url: Optional[str] = Field(default=None, max_length=512)


class BankSettingsResponse(BaseModel):
    """Settings as exposed to clients; credentials never leave the service."""

    id: int
    bank_account_id: str
    bank_account_name: str
    account_number: str
    bank_type: str
    bank_type_name: str
    unique_code_start: int
    unique_code_end: int
    is_active: bool
    webhook_url: Optional[str] = None
    has_access_token: bool
    has_secret_token: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, s: BankAccountSettings) -> "BankSettingsResponse":
        return cls(
            id=s.id,
            bank_account_id=s.bank_account_id,
            bank_account_name=s.bank_account_name,
            account_number=s.account_number,
            bank_type=s.bank_type,
            bank_type_name=s.bank_type_label,
            unique_code_start=s.unique_code_start,
            unique_code_end=s.unique_code_end,
            is_active=s.is_active,
            webhook_url=s.webhook_url,
            has_access_token=bool(s.access_token),
            has_secret_token=bool(s.secret_token),
            created_at=s.created_at,
            updated_at=s.updated_at,
        )


class ConnectionTestRequest(BaseModel):
    # Omitted: test the active settings' token
    access_token: Optional[str] = Field(default=None, min_length=1)


class BankAccountDTO(BaseModel):
    bank_id: str
    account_number: str
    bank_type: str
    bank_type_name: str
    account_name: str = ""
    username: str = ""
    balance: Decimal = Decimal("0")
    is_active: bool = True

    @classmethod
    def from_entity(cls, a: BankAccount) -> "BankAccountDTO":
        return cls(
            bank_id=a.bank_id,
            account_number=a.account_number,
            bank_type=a.bank_type,
            bank_type_name=bank_type_name(a.bank_type),
            account_name=a.account_name,
            username=a.username,
            balance=a.balance,
            is_active=a.is_active,
        )


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    bank_accounts: list[BankAccountDTO] = Field(default_factory=list)


class MutationQuery(BaseModel):
    bank_id: Optional[str] = None
    type: Optional[Literal["CREDIT", "DEBIT"]] = None
    amount: Optional[int] = Field(default=None, gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=20, ge=1, le=100)

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class MutationPage(BaseModel):
    items: list[MutationDTO]
    total: int
    page: int
    per_page: int


# ---- QRIS -----------------------------------------------------------------

class QrisDynamicRequest(BaseModel):
    payload: str = Field(min_length=1, max_length=512)
    amount: Union[int, Decimal]
    fee_type: Optional[Literal["Persentase", "Rupiah", "percentage", "fixed"]] = None
    fee_value: Optional[Decimal] = None

    @field_validator("payload")
    @classmethod
    def _strip_payload(cls, v: str) -> str:
        return v.strip()


class QrisDynamicResponse(BaseModel):
    payload: str
    merchant_name: str
    amount: int
    valid: bool


class QrisInspectRequest(BaseModel):
    payload: str = Field(min_length=1, max_length=512)

    @field_validator("payload")
    @classmethod
    def _strip_payload(cls, v: str) -> str:
        return v.strip()


class QrisInspectResponse(BaseModel):
    valid: bool
    merchant_name: str
    merchant_city: Optional[str] = None
    is_dynamic: bool
    amount: Optional[int] = None
