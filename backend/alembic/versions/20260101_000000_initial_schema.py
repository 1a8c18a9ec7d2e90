"""Initial schema - Create all tables

Revision ID: 001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'flows',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('nodes', sa.JSON(), nullable=False),
        sa.Column('connections', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT'),
        sa.Column('schedule', sa.String(100), nullable=True),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_flows_user_id', 'flows', ['user_id'])

    # Runs and their per-node records
    op.create_table(
        'runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('flow_id', sa.String(36), sa.ForeignKey('flows.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='QUEUED'),
        sa.Column('input', sa.JSON(), nullable=True),
        sa.Column('output', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_runs_flow_id', 'runs', ['flow_id'])
    op.create_index('ix_runs_user_id', 'runs', ['user_id'])

    op.create_table(
        'node_outputs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('run_id', sa.String(36), sa.ForeignKey('runs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('node_id', sa.String(255), nullable=False),
        sa.Column('output', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_node_outputs_run_id', 'node_outputs', ['run_id'])

    op.create_table(
        'credentials',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('data', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_credentials_user_id', 'credentials', ['user_id'])

    op.create_table(
        'ai_memories',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('flow_id', sa.String(36), nullable=False),
        sa.Column('node_id', sa.String(255), nullable=False),
        sa.Column('run_id', sa.String(36), nullable=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_ai_memories_flow_node', 'ai_memories', ['flow_id', 'node_id'])

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('flow_id', sa.String(36), sa.ForeignKey('flows.id', ondelete='CASCADE'), nullable=False),
        sa.Column('run_id', sa.String(36), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_webhook_events_flow_id', 'webhook_events', ['flow_id'])


def downgrade() -> None:
    op.drop_index('ix_webhook_events_flow_id', table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index('ix_ai_memories_flow_node', table_name='ai_memories')
    op.drop_table('ai_memories')
    op.drop_index('ix_credentials_user_id', table_name='credentials')
    op.drop_table('credentials')
    op.drop_index('ix_node_outputs_run_id', table_name='node_outputs')
    op.drop_table('node_outputs')
    op.drop_index('ix_runs_user_id', table_name='runs')
    op.drop_index('ix_runs_flow_id', table_name='runs')
    op.drop_table('runs')
    op.drop_index('ix_flows_user_id', table_name='flows')
    op.drop_table('flows')
