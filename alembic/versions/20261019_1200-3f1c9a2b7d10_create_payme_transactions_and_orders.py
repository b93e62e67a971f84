"""create_payme_transactions_and_orders

Revision ID: 3f1c9a2b7d10
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'payme_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('transaction_id', sa.String(length=64), nullable=False, server_default='', comment='Payme transaction id'),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('order_id', sa.String(length=100), nullable=False, server_default='', comment='internal order reference'),
        sa.Column('order_details', sa.Text(), nullable=True, comment='raw order JSON, possibly double-encoded'),
        sa.Column('status', sa.SmallInteger(), nullable=False, server_default='0', comment='0/1/2/-1/-2'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='major currency units'),
        sa.Column('create_time', sa.BigInteger(), nullable=False, server_default='0', comment='epoch ms'),
        sa.Column('perform_time', sa.BigInteger(), nullable=False, server_default='0', comment='epoch ms'),
        sa.Column('cancel_time', sa.BigInteger(), nullable=False, server_default='0', comment='epoch ms'),
        sa.Column('reason', sa.Integer(), nullable=True),
        sa.Column('provider', sa.String(length=32), nullable=False, server_default='payme'),
        sa.Column('prepare_id', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('billz_order_id', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('billz_order_number', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('billz_order_type', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('billz_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('billz_sync_error', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_payme_transactions_transaction_id',
        'payme_transactions',
        ['transaction_id'],
        unique=True,
        postgresql_where=sa.text("transaction_id <> ''"),
        sqlite_where=sa.text("transaction_id <> ''"),
    )
    op.create_index('ix_payme_transactions_user_id', 'payme_transactions', ['user_id'], unique=False)
    op.create_index('ix_payme_transactions_order_id', 'payme_transactions', ['order_id'], unique=False)
    op.create_index('ix_payme_transactions_status', 'payme_transactions', ['status'], unique=False)
    op.create_index('ix_payme_transactions_provider', 'payme_transactions', ['provider'], unique=False)
    op.create_index('idx_payme_provider_create_time', 'payme_transactions', ['provider', 'create_time'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='UZS'),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('bonus_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('placed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('billz_order_id', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('billz_order_number', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('billz_order_type', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('billz_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('billz_sync_error', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_index('ix_orders_order_number', table_name='orders')
    op.drop_table('orders')

    op.drop_index('idx_payme_provider_create_time', table_name='payme_transactions')
    op.drop_index('ix_payme_transactions_provider', table_name='payme_transactions')
    op.drop_index('ix_payme_transactions_status', table_name='payme_transactions')
    op.drop_index('ix_payme_transactions_order_id', table_name='payme_transactions')
    op.drop_index('ix_payme_transactions_user_id', table_name='payme_transactions')
    op.drop_index('uq_payme_transactions_transaction_id', table_name='payme_transactions')
    op.drop_table('payme_transactions')
