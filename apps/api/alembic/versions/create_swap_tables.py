"""create employees, schedule entries and swap request tables

Revision ID: create_swap_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'create_swap_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SWAP_STATUSES = ('pending', 'accepted', 'declined', 'approved', 'rejected', 'cancelled', 'auto-approved')


def _status(name: str) -> sa.Enum:
    return sa.Enum(*SWAP_STATUSES, name=name, native_enum=False, length=16)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'employees',
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('role', sa.Enum('employee', 'admin', name='employee_role', native_enum=False), nullable=False),
        sa.Column('open_for_swap', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('employee_id'),
    )
    op.create_index(op.f('ix_employees_email'), 'employees', ['email'], unique=True)

    op.create_table(
        'schedule_entries',
        sa.Column('shift_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('week_number', sa.Integer(), nullable=False),
        sa.Column('working_hours', sa.Text(), nullable=False),
        sa.Column('off_days', sa.JSON(), nullable=False),
        sa.Column('open_for_swap', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.employee_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('shift_id'),
    )
    op.create_index(op.f('ix_schedule_entries_employee_id'), 'schedule_entries', ['employee_id'], unique=False)
    op.create_index(
        'ix_schedule_entries_swappable', 'schedule_entries', ['open_for_swap', 'week_number', 'created_at'], unique=False
    )

    op.create_table(
        'swap_requests',
        sa.Column('swap_request_id', sa.Uuid(), nullable=False),
        sa.Column('requester_id', sa.Uuid(), nullable=False),
        sa.Column('recipient_id', sa.Uuid(), nullable=True),
        sa.Column('offered_shift_id', sa.Uuid(), nullable=False),
        sa.Column('requested_shift_id', sa.Uuid(), nullable=True),
        sa.Column('status', _status('swap_status'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('decided_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['requester_id'], ['employees.employee_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['recipient_id'], ['employees.employee_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['decided_by'], ['employees.employee_id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['offered_shift_id'], ['schedule_entries.shift_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['requested_shift_id'], ['schedule_entries.shift_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('swap_request_id'),
    )
    op.create_index('ix_swap_requests_requester_status', 'swap_requests', ['requester_id', 'status'], unique=False)
    op.create_index('ix_swap_requests_recipient_status', 'swap_requests', ['recipient_id', 'status'], unique=False)
    op.create_index('ix_swap_requests_offered_shift', 'swap_requests', ['offered_shift_id'], unique=False)
    op.create_index('ix_swap_requests_requested_shift', 'swap_requests', ['requested_shift_id'], unique=False)

    op.create_table(
        'swap_request_history',
        sa.Column('history_id', sa.Uuid(), nullable=False),
        sa.Column('swap_request_id', sa.Uuid(), nullable=False),
        sa.Column('from_status', _status('swap_history_from_status'), nullable=True),
        sa.Column('to_status', _status('swap_history_to_status'), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['swap_request_id'], ['swap_requests.swap_request_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('history_id'),
    )
    op.create_index(
        op.f('ix_swap_request_history_swap_request_id'), 'swap_request_history', ['swap_request_id'], unique=False
    )

    # One row per shift while it is referenced by an active request
    op.create_table(
        'shift_commitments',
        sa.Column('shift_id', sa.Uuid(), nullable=False),
        sa.Column('swap_request_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['shift_id'], ['schedule_entries.shift_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['swap_request_id'], ['swap_requests.swap_request_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('shift_id'),
    )
    op.create_index(
        op.f('ix_shift_commitments_swap_request_id'), 'shift_commitments', ['swap_request_id'], unique=False
    )

    op.create_table(
        'notifications',
        sa.Column('notification_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('target_user_id', sa.Uuid(), nullable=True),
        sa.Column('swap_request_id', sa.Uuid(), nullable=False),
        sa.Column('new_status', _status('notification_status'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['swap_request_id'], ['swap_requests.swap_request_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('notification_id'),
    )
    op.create_index(op.f('ix_notifications_target_user_id'), 'notifications', ['target_user_id'], unique=False)
    op.create_index(op.f('ix_notifications_swap_request_id'), 'notifications', ['swap_request_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_notifications_swap_request_id'), table_name='notifications')
    op.drop_index(op.f('ix_notifications_target_user_id'), table_name='notifications')
    op.drop_table('notifications')
    op.drop_index(op.f('ix_shift_commitments_swap_request_id'), table_name='shift_commitments')
    op.drop_table('shift_commitments')
    op.drop_index(op.f('ix_swap_request_history_swap_request_id'), table_name='swap_request_history')
    op.drop_table('swap_request_history')
    op.drop_index('ix_swap_requests_requested_shift', table_name='swap_requests')
    op.drop_index('ix_swap_requests_offered_shift', table_name='swap_requests')
    op.drop_index('ix_swap_requests_recipient_status', table_name='swap_requests')
    op.drop_index('ix_swap_requests_requester_status', table_name='swap_requests')
    op.drop_table('swap_requests')
    op.drop_index('ix_schedule_entries_swappable', table_name='schedule_entries')
    op.drop_index(op.f('ix_schedule_entries_employee_id'), table_name='schedule_entries')
    op.drop_table('schedule_entries')
    op.drop_index(op.f('ix_employees_email'), table_name='employees')
    op.drop_table('employees')
