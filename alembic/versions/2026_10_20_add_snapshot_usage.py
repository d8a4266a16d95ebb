"""add snapshot usage column

Revision ID: 3f8a6d21c9e7
Revises: 7c2e91b4d0a5
Create Date: 2026-10-20 00:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f8a6d21c9e7'
down_revision: Union[str, None] = '7c2e91b4d0a5'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'price_snapshots',
        sa.Column('used_by_trade_id', sa.String(length=36), nullable=True),
    )


def downgrade() -> None:
    op.drop_column('price_snapshots', 'used_by_trade_id')
