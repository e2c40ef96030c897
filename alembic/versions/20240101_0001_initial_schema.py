"""initial booking engine schema

Revision ID: 0001_initial
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column('id', sa.String(36), primary_key=True)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _user_fk() -> sa.Column:
    return sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        _ts('created_at'),
    )

    op.create_table(
        'teams',
        _id(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False, unique=True),
        _ts('created_at'),
    )

    op.create_table(
        'team_members',
        _id(),
        sa.Column('team_id', sa.String(36), sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        _user_fk(),
        sa.Column('role', sa.String(24), nullable=False, server_default='MEMBER'),
        sa.Column('is_accepted', sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts('created_at'),
        sa.UniqueConstraint('team_id', 'user_id', name='uq_team_members_team_id_user_id'),
    )

    op.create_table(
        'availability',
        _id(),
        _user_fk(),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='ck_availability_day_of_week'),
    )
    op.create_index('ix_availability_user_id_day', 'availability', ['user_id', 'day_of_week'])

    op.create_table(
        'date_overrides',
        _id(),
        _user_fk(),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('start_time', sa.String(5)),
        sa.Column('end_time', sa.String(5)),
        sa.UniqueConstraint('user_id', 'date', name='uq_date_overrides_user_id_date'),
    )

    op.create_table(
        'event_types',
        _id(),
        _user_fk(),
        sa.Column('team_id', sa.String(36), sa.ForeignKey('teams.id', ondelete='SET NULL')),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('buffer_before', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('buffer_after', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('minimum_notice', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_booking_window', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('location_type', sa.String(24), nullable=False, server_default='VIDEO_ZOOM'),
        sa.Column('location_details', sa.Text()),
        sa.Column('custom_questions', sa.JSON(), nullable=False),
        sa.Column('scheduling_type', sa.String(24)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts('created_at'),
    )
    op.create_index('ix_event_types_user_id', 'event_types', ['user_id'])
    op.create_index('ix_event_types_team_id', 'event_types', ['team_id'])

    op.create_table(
        'bookings',
        _id(),
        sa.Column('event_type_id', sa.String(36), sa.ForeignKey('event_types.id'), nullable=False),
        _user_fk(),
        sa.Column('guest_name', sa.String(100), nullable=False),
        sa.Column('guest_email', sa.String(255), nullable=False),
        sa.Column('guest_phone', sa.String(20)),
        sa.Column('guest_timezone', sa.String(64), nullable=False),
        sa.Column('custom_responses', sa.JSON(), nullable=False),
        sa.Column('notes', sa.Text()),
        _ts('start_time'),
        _ts('end_time'),
        sa.Column('status', sa.String(24), nullable=False, server_default='CONFIRMED'),
        sa.Column('cancellation_reason', sa.Text()),
        sa.Column('location', sa.Text()),
        sa.Column('meeting_link', sa.Text()),
        sa.Column('meeting_password', sa.String(64)),
        sa.Column('meeting_id', sa.String(128)),
        sa.Column('reschedule_token', sa.String(64), nullable=False),
        sa.Column('cancel_token', sa.String(64), nullable=False),
        _ts('created_at'),
        _ts('updated_at'),
        sa.UniqueConstraint('reschedule_token', name='uq_bookings_reschedule_token'),
        sa.UniqueConstraint('cancel_token', name='uq_bookings_cancel_token'),
    )
    op.create_index('ix_bookings_user_id_start_time', 'bookings', ['user_id', 'start_time'])
    op.create_index('ix_bookings_event_type_id', 'bookings', ['event_type_id'])

    # Database-level guard against two active bookings on the same host time
    op.create_table(
        'booking_slot_claims',
        _id(),
        _user_fk(),
        sa.Column('booking_id', sa.String(36), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        _ts('bucket_start'),
        sa.UniqueConstraint('user_id', 'bucket_start', name='uq_booking_slot_claims_user_id_bucket_start'),
    )
    op.create_index('ix_booking_slot_claims_booking_id', 'booking_slot_claims', ['booking_id'])

    op.create_table(
        'connected_calendars',
        _id(),
        _user_fk(),
        sa.Column('provider', sa.String(24), nullable=False),
        sa.Column('calendar_id', sa.String(255), nullable=False, server_default='primary'),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text()),
        _ts('expires_at', nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_connected_calendars_user_id', 'connected_calendars', ['user_id'])

    op.create_table(
        'reminders',
        _id(),
        sa.Column('booking_id', sa.String(36), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('channel', sa.String(24), nullable=False),
        sa.Column('minutes_before', sa.Integer(), nullable=False),
        _ts('scheduled_for'),
        sa.Column('status', sa.String(24), nullable=False, server_default='PENDING'),
        _ts('sent_at', nullable=True),
        sa.Column('error', sa.Text()),
        _ts('created_at'),
    )
    op.create_index('ix_reminders_status_scheduled_for', 'reminders', ['status', 'scheduled_for'])
    op.create_index('ix_reminders_booking_id', 'reminders', ['booking_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('reminders')
    op.drop_table('connected_calendars')
    op.drop_table('booking_slot_claims')
    op.drop_table('bookings')
    op.drop_table('event_types')
    op.drop_table('date_overrides')
    op.drop_table('availability')
    op.drop_table('team_members')
    op.drop_table('teams')
    op.drop_table('users')
