"""company suspension flag

Revision ID: 9c3e5a7b2d41
Revises: 4f1a2b3c9d10
Create Date: 2026-10-25 10:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9c3e5a7b2d41'
down_revision: Union[str, Sequence[str], None] = '4f1a2b3c9d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table('companies') as batch_op:
        batch_op.add_column(sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()))
        batch_op.create_index('ix_companies_is_active', ['is_active'])


def downgrade() -> None:
    with op.batch_alter_table('companies') as batch_op:
        batch_op.drop_index('ix_companies_is_active')
        batch_op.drop_column('is_active')
