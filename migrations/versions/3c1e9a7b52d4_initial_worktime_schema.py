"""initial worktime schema

Revision ID: 3c1e9a7b52d4
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '3c1e9a7b52d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('admin', 'hr', 'manager', 'employee', name='userrole')
audit_action = sa.Enum(
    'clock_in', 'clock_out', 'break_start', 'break_end', 'auto_close',
    'manual_entry_create', 'manual_entry_update', 'manual_entry_delete',
    name='auditaction',
)
session_status = sa.Enum('ACTIVE', 'COMPLETED', name='timesessionstatus')
session_source = sa.Enum('LIVE', 'MANUAL', name='timesessionsource')
closed_by = sa.Enum('USER', 'SYSTEM', name='sessionclosedby')
break_end_source = sa.Enum('USER', 'AUTO_CLOCK_OUT', 'SYSTEM_SWEEP', name='breakendsource')
attendance_status = sa.Enum('PRESENT', 'HALF_DAY', 'ABSENT', name='dailyattendancestatus')


def _base_columns():
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'shift_types',
        *_base_columns(),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('break_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('late_grace_minutes', sa.Integer(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('superseded_by_id', sa.Integer(), sa.ForeignKey('shift_types.id'), nullable=True),
    )
    op.create_index('ix_shift_types_id', 'shift_types', ['id'])
    op.create_index(
        'uq_shift_types_active_name',
        'shift_types',
        ['name'],
        unique=True,
        sqlite_where=sa.text('is_active = 1 AND is_deleted = 0'),
        postgresql_where=sa.text('is_active AND NOT is_deleted'),
    )

    op.create_table(
        'user_shifts',
        *_base_columns(),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('shift_type_id', sa.Integer(), sa.ForeignKey('shift_types.id'), nullable=False),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_user_shifts_id', 'user_shifts', ['id'])
    op.create_index('ix_user_shifts_user_id', 'user_shifts', ['user_id'])

    op.create_table(
        'time_sessions',
        *_base_columns(),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('clock_in', sa.DateTime(timezone=True), nullable=False),
        sa.Column('clock_out', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', session_status, nullable=False),
        sa.Column('source', session_source, nullable=False),
        sa.Column('closed_by', closed_by, nullable=True),
        sa.Column('total_work_minutes', sa.Integer(), nullable=True),
        sa.Column('total_break_minutes', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_time_sessions_id', 'time_sessions', ['id'])
    op.create_index('ix_time_sessions_user_id', 'time_sessions', ['user_id'])
    op.create_index('ix_time_sessions_session_date', 'time_sessions', ['session_date'])
    op.create_index('ix_time_sessions_status', 'time_sessions', ['status'])
    op.create_index('ix_time_sessions_user_date', 'time_sessions', ['user_id', 'session_date'])
    op.create_index(
        'uq_time_sessions_active_user', 'time_sessions', ['user_id'], unique=True,
        sqlite_where=sa.text("status = 'ACTIVE'"),
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        'time_session_breaks',
        *_base_columns(),
        sa.Column('time_session_id', sa.Integer(), sa.ForeignKey('time_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('break_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('break_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(255), nullable=True),
        sa.Column('end_source', break_end_source, nullable=True),
    )
    op.create_index('ix_time_session_breaks_id', 'time_session_breaks', ['id'])
    op.create_index('ix_time_session_breaks_time_session_id', 'time_session_breaks', ['time_session_id'])
    op.create_index(
        'uq_time_session_breaks_open', 'time_session_breaks', ['time_session_id'], unique=True,
        sqlite_where=sa.text("break_end IS NULL"),
        postgresql_where=sa.text("break_end IS NULL"),
    )

    op.create_table(
        'daily_attendances',
        *_base_columns(),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('attendance_date', sa.Date(), nullable=False),
        sa.Column('shift_type_id', sa.Integer(), sa.ForeignKey('shift_types.id'), nullable=True),
        sa.Column('sessions', sa.JSON(), nullable=True),
        sa.Column('work_minutes', sa.Integer(), nullable=True),
        sa.Column('break_minutes', sa.Integer(), nullable=True),
        sa.Column('is_late_check_in', sa.Boolean(), nullable=True),
        sa.Column('is_early_check_out', sa.Boolean(), nullable=True),
        sa.Column('is_overtime', sa.Boolean(), nullable=True),
        sa.Column('overtime_minutes', sa.Integer(), nullable=True),
        sa.Column('attendance_percentage', sa.Integer(), nullable=True),
        sa.Column('status', attendance_status, nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.UniqueConstraint('user_id', 'attendance_date', name='uq_daily_attendances_user_date'),
    )
    op.create_index('ix_daily_attendances_id', 'daily_attendances', ['id'])
    op.create_index('ix_daily_attendances_user_id', 'daily_attendances', ['user_id'])
    op.create_index('ix_daily_attendances_attendance_date', 'daily_attendances', ['attendance_date'])

    op.create_table(
        'audit_logs',
        *_base_columns(),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', audit_action, nullable=False),
        sa.Column('affected_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('resource', sa.String(100), nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('endpoint', sa.String(255), nullable=True),
        sa.Column('request_id', sa.String(100), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_affected_user_id', 'audit_logs', ['affected_user_id'])
    op.create_index('ix_audit_logs_resource_id', 'audit_logs', ['resource_id'])
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    print("✓ [3c1e9a7b52d4] Created worktime schema")


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('daily_attendances')
    op.drop_table('time_session_breaks')
    op.drop_table('time_sessions')
    op.drop_table('user_shifts')
    op.drop_table('shift_types')
    op.drop_table('users')
    bind = op.get_bind()
    for enum in (attendance_status, break_end_source, closed_by, session_source, session_status, audit_action, user_role):
        enum.drop(bind, checkfirst=True)
