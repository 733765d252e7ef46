"""tasks and settings

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('tasks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('resource', sa.String(length=120), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('original_duration', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=50)),
        sa.Column('dependencies', sa.String(length=500)),
        sa.Column('external_id', sa.Integer()),
        sa.Column('project_id', sa.Integer()),
        sa.Column('project_name', sa.String(length=300)),
        sa.Column('stage', sa.String(length=200)),
        sa.Column('tags', sa.Text()),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_tasks_resource', 'tasks', ['resource'])
    op.create_index('ix_tasks_external_id', 'tasks', ['external_id'])

    op.create_table('settings',
        sa.Column('key', sa.String(length=100), primary_key=True),
        sa.Column('value', sa.String(length=2000)),
    )


def downgrade() -> None:
    op.drop_table('settings')
    op.drop_index('ix_tasks_external_id', table_name='tasks')
    op.drop_index('ix_tasks_resource', table_name='tasks')
    op.drop_table('tasks')
