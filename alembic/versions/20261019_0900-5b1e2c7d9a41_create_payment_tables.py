"""create_payment_tables

Revision ID: 5b1e2c7d9a41
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5b1e2c7d9a41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'bank_account_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False, comment='Aggregator API bearer token'),
        sa.Column('bank_account_id', sa.String(length=64), nullable=False, comment='Aggregator bank id'),
        sa.Column('bank_account_name', sa.String(length=128), nullable=False),
        sa.Column('account_number', sa.String(length=64), nullable=False),
        sa.Column('bank_type', sa.String(length=32), nullable=False),
        sa.Column('secret_token', sa.String(length=255), nullable=False, comment='Webhook shared secret'),
        sa.Column('webhook_url', sa.String(length=512), nullable=True),
        sa.Column('unique_code_start', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unique_code_end', sa.Integer(), nullable=False, server_default='999'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        comment='Receiving bank account and aggregator credentials; at most one active row',
    )
    op.create_index('ix_bank_account_settings_id', 'bank_account_settings', ['id'], unique=False)
    op.create_index('ix_bank_account_settings_bank_account_id', 'bank_account_settings', ['bank_account_id'], unique=False)
    op.create_index('ix_bank_account_settings_is_active', 'bank_account_settings', ['is_active'], unique=False)

    op.create_table(
        'payment_orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='Public order reference'),
        sa.Column('customer_name', sa.String(length=100), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('unique_code', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING',
                  comment='PENDING/CHECKING/PAID/EXPIRED/CANCELLED'),
        sa.Column('bank_account_id', sa.String(length=64), nullable=False),
        sa.Column('issued_date', sa.Date(), nullable=False),
        sa.Column('mutation_id', sa.String(length=100), nullable=True, comment='Bank mutation that paid the order'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
        sa.UniqueConstraint('mutation_id'),
        sa.UniqueConstraint('bank_account_id', 'issued_date', 'unique_code', name='uq_payment_orders_account_day_code'),
        comment='Bank transfer payment orders identified by amount + unique code',
    )
    op.create_index('ix_payment_orders_id', 'payment_orders', ['id'], unique=False)
    op.create_index('ix_payment_orders_total_amount', 'payment_orders', ['total_amount'], unique=False)
    op.create_index('ix_payment_orders_status', 'payment_orders', ['status'], unique=False)
    op.create_index('ix_payment_orders_bank_account_id', 'payment_orders', ['bank_account_id'], unique=False)
    op.create_index('ix_payment_orders_created_at', 'payment_orders', ['created_at'], unique=False)
    op.create_index('ix_payment_orders_status_total', 'payment_orders', ['status', 'total_amount'], unique=False)
    op.create_index('ix_payment_orders_status_expires', 'payment_orders', ['status', 'expires_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_payment_orders_status_expires', table_name='payment_orders')
    op.drop_index('ix_payment_orders_status_total', table_name='payment_orders')
    op.drop_index('ix_payment_orders_created_at', table_name='payment_orders')
    op.drop_index('ix_payment_orders_bank_account_id', table_name='payment_orders')
    op.drop_index('ix_payment_orders_status', table_name='payment_orders')
    op.drop_index('ix_payment_orders_total_amount', table_name='payment_orders')
    op.drop_index('ix_payment_orders_id', table_name='payment_orders')
    op.drop_table('payment_orders')

    op.drop_index('ix_bank_account_settings_is_active', table_name='bank_account_settings')
    op.drop_index('ix_bank_account_settings_bank_account_id', table_name='bank_account_settings')
    op.drop_index('ix_bank_account_settings_id', table_name='bank_account_settings')
    op.drop_table('bank_account_settings')
