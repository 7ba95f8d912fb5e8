"""
Payment order ORM model.

Infrastructure detail only; business rules live in domain.payment.entity.PaymentOrder.
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, Date, DateTime, Text,
    Index, UniqueConstraint,
)
from datetime import datetime, timezone

from .base import Base


class PaymentOrderModel(Base):
    __tablename__ = "payment_orders"

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(String(64), unique=True, nullable=False, comment="Public order reference")
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(32), nullable=False)

    # Whole Rupiah; total_amount is what the customer must transfer
    amount = Column(BigInteger, nullable=False)
    unique_code = Column(Integer, nullable=False)
    total_amount = Column(BigInteger, nullable=False, index=True)

    status = Column(String(16), nullable=False, default="PENDING", index=True,
                    comment="PENDING/CHECKING/PAID/EXPIRED/CANCELLED")
    bank_account_id = Column(String(64), nullable=False, index=True)
    # Business-timezone calendar day the unique code was issued for
    issued_date = Column(Date, nullable=False)
    mutation_id = Column(String(100), unique=True, nullable=True, comment="Bank mutation that paid the order")
    description = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "bank_account_id", "issued_date", "unique_code",
            name="uq_payment_orders_account_day_code",
        ),
        Index("ix_payment_orders_status_total", "status", "total_amount"),
        Index("ix_payment_orders_status_expires", "status", "expires_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentOrderModel(id={self.id}, order_id='{self.order_id}', "
            f"total_amount={self.total_amount}, status='{self.status}')>"
        )
