"""Time-series tables - telemetry, health and mission status reports

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-12

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create device_telemetry table
    op.create_table(
        'device_telemetry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('device_uid', sa.String(length=100), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('altitude', sa.Float(), nullable=True),
        sa.Column('speed', sa.Float(), nullable=True),
        sa.Column('heading', sa.Float(), nullable=True),
        sa.Column('battery_level', sa.Float(), nullable=True),
        sa.Column('sensors', sa.JSON(), nullable=True),
        sa.Column('additional_data', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_device_telemetry_device_uid', 'device_telemetry', ['device_uid'], unique=False)
    op.create_index('ix_device_telemetry_timestamp', 'device_telemetry', ['timestamp'], unique=False)
    op.create_index('ix_device_telemetry_device_ts', 'device_telemetry', ['device_uid', 'timestamp'], unique=False)

    # Create device_health table
    op.create_table(
        'device_health',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('device_uid', sa.String(length=100), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('overall_status', sa.String(length=20), nullable=False),
        sa.Column('cpu_usage', sa.Float(), nullable=True),
        sa.Column('memory_usage', sa.Float(), nullable=True),
        sa.Column('disk_usage', sa.Float(), nullable=True),
        sa.Column('temperature', sa.Float(), nullable=True),
        sa.Column('battery_health', sa.Float(), nullable=True),
        sa.Column('system_errors', sa.JSON(), nullable=True),
        sa.Column('warnings', sa.JSON(), nullable=True),
        sa.Column('diagnostics', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_device_health_device_uid', 'device_health', ['device_uid'], unique=False)
    op.create_index('ix_device_health_timestamp', 'device_health', ['timestamp'], unique=False)
    op.create_index('ix_device_health_device_ts', 'device_health', ['device_uid', 'timestamp'], unique=False)

    # Create mission_status table
    op.create_table(
        'mission_status',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('mission_id', sa.String(length=64), nullable=False),
        sa.Column('device_uid', sa.String(length=100), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_state', sa.String(length=32), nullable=False),
        sa.Column('progress_percentage', sa.Float(), nullable=True),
        sa.Column('current_waypoint_index', sa.Integer(), nullable=True),
        sa.Column('current_latitude', sa.Float(), nullable=True),
        sa.Column('current_longitude', sa.Float(), nullable=True),
        sa.Column('distance_remaining', sa.Float(), nullable=True),
        sa.Column('estimated_time_remaining', sa.Integer(), nullable=True),
        sa.Column('status_message', sa.Text(), nullable=True),
        sa.Column('additional_data', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_mission_status_mission_id', 'mission_status', ['mission_id'], unique=False)
    op.create_index('ix_mission_status_device_uid', 'mission_status', ['device_uid'], unique=False)
    op.create_index('ix_mission_status_timestamp', 'mission_status', ['timestamp'], unique=False)
    op.create_index('ix_mission_status_mission_ts', 'mission_status', ['mission_id', 'timestamp'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_mission_status_mission_ts', table_name='mission_status')
    op.drop_index('ix_mission_status_timestamp', table_name='mission_status')
    op.drop_index('ix_mission_status_device_uid', table_name='mission_status')
    op.drop_index('ix_mission_status_mission_id', table_name='mission_status')
    op.drop_table('mission_status')
    op.drop_index('ix_device_health_device_ts', table_name='device_health')
    op.drop_index('ix_device_health_timestamp', table_name='device_health')
    op.drop_index('ix_device_health_device_uid', table_name='device_health')
    op.drop_table('device_health')
    op.drop_index('ix_device_telemetry_device_ts', table_name='device_telemetry')
    op.drop_index('ix_device_telemetry_timestamp', table_name='device_telemetry')
    op.drop_index('ix_device_telemetry_device_uid', table_name='device_telemetry')
    op.drop_table('device_telemetry')
