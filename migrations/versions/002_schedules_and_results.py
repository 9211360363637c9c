"""Teacher mappings, working days, school schedules and test results.

Revision ID: 002_schedules_and_results
Revises: 001_initial
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op

from schema import SCHEDULE_AND_RESULT_STATEMENTS, SCHEDULE_AND_RESULT_TABLE_NAMES


# revision identifiers, used by Alembic.
revision = '002_schedules_and_results'
down_revision = '001_initial'
branch_labels = None
depends_on = None


def upgrade() -> None:
    for statement in SCHEDULE_AND_RESULT_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    for table in SCHEDULE_AND_RESULT_TABLE_NAMES:
        op.execute(f'DROP TABLE IF EXISTS {table}')
