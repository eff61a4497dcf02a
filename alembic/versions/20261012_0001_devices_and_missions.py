"""Initial schema - devices and missions tables

Revision ID: 0001
Revises:
Create Date: 2026-10-12

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
    # Create devices table
    op.create_table(
        'devices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('device_uid', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('model', sa.String(length=100), nullable=True),
        sa.Column('manufacturer', sa.String(length=100), nullable=True),
        sa.Column('capabilities', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='registered'),
        sa.Column('password_hash', sa.String(length=100), nullable=False),
        sa.Column('current_token', sa.String(length=1024), nullable=True),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_latitude', sa.Float(), nullable=True),
        sa.Column('last_longitude', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_devices_device_uid', 'devices', ['device_uid'], unique=True)

    # Create missions table
    op.create_table(
        'missions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('mission_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='custom'),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('assigned_device_uid', sa.String(length=100), nullable=True),
        sa.Column('waypoints', sa.JSON(), nullable=False),
        sa.Column('parameters', sa.JSON(), nullable=True),
        sa.Column('scheduled_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_completion_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('progress_percentage', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_missions_mission_id', 'missions', ['mission_id'], unique=True)
    op.create_index('ix_missions_state', 'missions', ['state'], unique=False)
    op.create_index('ix_missions_assigned_device_uid', 'missions', ['assigned_device_uid'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_missions_assigned_device_uid', table_name='missions')
    op.drop_index('ix_missions_state', table_name='missions')
    op.drop_index('ix_missions_mission_id', table_name='missions')
    op.drop_table('missions')
    op.drop_index('ix_devices_device_uid', table_name='devices')
    op.drop_table('devices')
