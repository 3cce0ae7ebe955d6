"""Initial schema - samples table

Revision ID: 0001
Revises:
Create Date: 2025-03-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Raw station payloads, append-only
    op.create_table(
        'samples',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ts', sa.BigInteger(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='generic'),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_samples_ts', 'samples', ['ts'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_samples_ts', table_name='samples')
    op.drop_table('samples')
