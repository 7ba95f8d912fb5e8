"""
Bank account settings ORM model.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from datetime import datetime, timezone

from .base import Base


class BankAccountSettingsModel(Base):
    __tablename__ = "bank_account_settings"

    id = Column(Integer, primary_key=True, index=True)

    access_token = Column(Text, nullable=False, comment="Aggregator API bearer token")
    bank_account_id = Column(String(64), nullable=False, index=True, comment="Aggregator bank id")
    bank_account_name = Column(String(128), nullable=False)
    account_number = Column(String(64), nullable=False)
    bank_type = Column(String(32), nullable=False)
    secret_token = Column(String(255), nullable=False, comment="Webhook shared secret")
    webhook_url = Column(String(512), nullable=True)

    unique_code_start = Column(Integer, nullable=False, default=1)
    unique_code_end = Column(Integer, nullable=False, default=999)
    is_active = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return (
            f"<BankAccountSettingsModel(id={self.id}, bank_account_id='{self.bank_account_id}', "
            f"is_active={self.is_active})>"
        )
