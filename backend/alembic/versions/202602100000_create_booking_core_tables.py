"""Create booking core tables

Revision ID: 202602100000
Revises:
Create Date: 2026-02-10 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '202602100000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'clinics',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('line_channel_secret', sa.String(length=255), nullable=True),
        sa.Column('line_channel_access_token', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_clinics_id', 'clinics', ['id'])

    op.create_table(
        'doctors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('color', sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_doctors_id', 'doctors', ['id'])
    op.create_index('idx_doctors_clinic_sort', 'doctors', ['clinic_id', 'sort_order'])

    op.create_table(
        'patients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('line_user_id', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_patients_id', 'patients', ['id'])
    op.create_index('idx_patients_clinic', 'patients', ['clinic_id'])

    op.create_table(
        'reservations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('reserved_date', sa.Date(), nullable=False),
        sa.Column('reserved_time', sa.Time(), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='pending', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id']),
    )
    op.create_index('ix_reservations_id', 'reservations', ['id'])
    op.create_index('idx_reservations_clinic_doctor_date', 'reservations', ['clinic_id', 'doctor_id', 'reserved_date'])
    op.create_index('idx_reservations_clinic_date', 'reservations', ['clinic_id', 'reserved_date'])

    op.create_table(
        'weekly_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('weekday', sa.Integer(), nullable=False),
        sa.Column('enabled', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('slot_minutes', sa.Integer(), server_default='15', nullable=False),
        sa.Column('capacity', sa.Integer(), server_default='2', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('clinic_id', 'doctor_id', 'weekday', name='uq_weekly_rules_doctor_weekday'),
    )
    op.create_index('ix_weekly_rules_id', 'weekly_rules', ['id'])

    op.create_table(
        'date_overrides',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('slot_name', sa.String(length=50), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('slot_minutes', sa.Integer(), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=True),
        sa.Column('memo', sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ondelete='CASCADE'),
        sa.CheckConstraint("type IN ('closed', 'open', 'modify')", name='check_override_type'),
    )
    op.create_index('ix_date_overrides_id', 'date_overrides', ['id'])
    op.create_index('idx_date_overrides_clinic_doctor_date', 'date_overrides', ['clinic_id', 'doctor_id', 'date'])
    # One row per (doctor, date, band); the unnamed band counts as its own key
    op.execute("""
        CREATE UNIQUE INDEX uq_date_overrides_key
        ON date_overrides (clinic_id, doctor_id, date, COALESCE(slot_name, ''))
    """)

    op.create_table(
        'booking_open_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('target_month', sa.String(length=7), nullable=False),
        sa.Column('is_open', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('opened_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('memo', sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('clinic_id', 'target_month', name='uq_booking_open_settings_month'),
    )
    op.create_index('ix_booking_open_settings_id', 'booking_open_settings', ['id'])

    op.create_table(
        'reminder_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('timing_type', sa.String(length=20), nullable=False),
        sa.Column('timing_value', sa.Integer(), nullable=True),
        sa.Column('send_hour', sa.Integer(), nullable=True),
        sa.Column('send_minute', sa.Integer(), server_default='0', nullable=False),
        sa.Column('target_day_offset', sa.Integer(), server_default='1', nullable=False),
        sa.Column('message_format', sa.String(length=10), server_default='text', nullable=False),
        sa.Column('message_template', sa.Text(), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), server_default='true', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.CheckConstraint("timing_type IN ('before_hours', 'before_days', 'fixed_time')", name='check_timing_type'),
        sa.CheckConstraint("message_format IN ('text', 'flex')", name='check_message_format'),
        sa.CheckConstraint('timing_value IS NULL OR timing_value >= 0', name='check_timing_value_non_negative'),
        sa.CheckConstraint("timing_type != 'fixed_time' OR send_hour IS NOT NULL", name='check_fixed_time_send_hour'),
    )
    op.create_index('ix_reminder_rules_id', 'reminder_rules', ['id'])

    op.create_table(
        'scheduled_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=True),
        sa.Column('destination_id', sa.String(length=255), nullable=True),
        sa.Column('message_type', sa.String(length=50), server_default='reminder', nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('flex_payload', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('scheduled_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='scheduled', nullable=False),
        sa.Column('sent_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ondelete='SET NULL'),
        sa.CheckConstraint("status IN ('scheduled', 'sending', 'sent', 'failed')", name='check_status'),
    )
    op.create_index('ix_scheduled_messages_id', 'scheduled_messages', ['id'])
    op.create_index('idx_scheduled_messages_status_time', 'scheduled_messages', ['status', 'scheduled_at'])
    op.create_index('idx_scheduled_messages_clinic', 'scheduled_messages', ['clinic_id'])

    op.create_table(
        'reminder_sent_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('rule_id', sa.Integer(), nullable=False),
        sa.Column('reservation_id', sa.Integer(), nullable=False),
        sa.Column('scheduled_message_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['rule_id'], ['reminder_rules.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['scheduled_message_id'], ['scheduled_messages.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('rule_id', 'reservation_id', name='uq_reminder_sent_logs_rule_reservation'),
    )
    op.create_index('ix_reminder_sent_logs_id', 'reminder_sent_logs', ['id'])
    op.create_index('idx_reminder_sent_logs_clinic_rule', 'reminder_sent_logs', ['clinic_id', 'rule_id'])


def downgrade() -> None:
    op.drop_table('reminder_sent_logs')
    op.drop_table('scheduled_messages')
    op.drop_table('reminder_rules')
    op.drop_table('booking_open_settings')
    op.execute("DROP INDEX IF EXISTS uq_date_overrides_key")
    op.drop_table('date_overrides')
    op.drop_table('weekly_rules')
    op.drop_table('reservations')
    op.drop_table('patients')
    op.drop_table('doctors')
    op.drop_table('clinics')
