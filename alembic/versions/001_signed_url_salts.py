"""Add signed_url_salts table

Revision ID: 001_signed_url_salts
Revises:
Create Date: 2026-10-19

Holds the one active salt per scope identifier used to sign capability URLs.
Rows are replaced on every issue and deleted on completion.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_signed_url_salts'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create signed_url_salts table."""
    op.create_table(
        'signed_url_salts',
        sa.Column('scope_id', sa.String(255), primary_key=True),
        sa.Column('salt', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # Lets operators prune abandoned salts by age
    op.create_index('ix_signed_url_salts_created_at', 'signed_url_salts', ['created_at'])


def downgrade() -> None:
    """Drop signed_url_salts table."""
    op.drop_index('ix_signed_url_salts_created_at', table_name='signed_url_salts')
    op.drop_table('signed_url_salts')
