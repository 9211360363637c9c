"""Initial school administration schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op

from schema import INITIAL_STATEMENTS, INITIAL_TABLE_NAMES


# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the initial tables and indexes of the school admin schema."""
    for statement in INITIAL_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    for table in INITIAL_TABLE_NAMES:
        op.execute(f'DROP TABLE IF EXISTS {table} CASCADE')
