"""create price, snapshot, trade and balance tables

Revision ID: 7c2e91b4d0a5
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c2e91b4d0a5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('metal_prices',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('metal', sa.String(length=10), nullable=False),
        sa.Column('buy_price_per_gram', sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column('sell_price_per_gram', sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('source', sa.String(length=100), nullable=False),
        sa.Column('is_derived', sa.Boolean(), nullable=False),
        sa.Column('opening_price_per_gram', sa.Numeric(precision=18, scale=6), nullable=True),
        sa.Column('change_per_gram', sa.Numeric(precision=18, scale=6), nullable=True),
        sa.Column('change_percent', sa.Numeric(precision=10, scale=4), nullable=True),
        sa.Column('observed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_metal_prices_latest', 'metal_prices', ['metal', 'observed_at'], unique=False)

    op.create_table('price_snapshots',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('metal', sa.String(length=10), nullable=False),
        sa.Column('buy_price_per_gram', sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column('sell_price_per_gram', sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('source_price_record_id', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['source_price_record_id'], ['metal_prices.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('trades',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('idempotency_key', sa.String(length=128), nullable=False),
        sa.Column('metal', sa.String(length=10), nullable=False),
        sa.Column('direction', sa.String(length=4), nullable=False),
        sa.Column('requested_amount', sa.Numeric(precision=20, scale=6), nullable=False),
        sa.Column('snapshot_id', sa.String(length=36), nullable=False),
        sa.Column('amount_currency', sa.Numeric(precision=20, scale=6), nullable=True),
        sa.Column('amount_grams', sa.Numeric(precision=20, scale=6), nullable=True),
        sa.Column('price_per_gram', sa.Numeric(precision=18, scale=6), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('error_code', sa.String(length=40), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'idempotency_key', name='uq_trade_idempotency')
    )
    op.create_index('idx_trades_user', 'trades', ['user_id', 'created_at'], unique=False)

    op.create_table('balances',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('asset', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=6), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'asset', name='uq_balance_identity')
    )


def downgrade() -> None:
    op.drop_table('balances')
    op.drop_index('idx_trades_user', table_name='trades')
    op.drop_table('trades')
    op.drop_table('price_snapshots')
    op.drop_index('idx_metal_prices_latest', table_name='metal_prices')
    op.drop_table('metal_prices')
