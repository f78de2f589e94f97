"""Notification records and reminder schedules.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

Creates:
- notifications: notification records with delivery, retry and recurrence state
- reminder_schedules: one-shot and repeating reminder schedules
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

# Enum columns store member names
notification_kind = sa.Enum(
    'TASK_REMINDER', 'TASK_DUE', 'TASK_OVERDUE', 'TASK_ASSIGNED', 'TASK_COMPLETED',
    'SERVER_EVENT', 'USER_EVENT', 'SYSTEM_ALERT',
    name='notificationkind',
)
notification_channel = sa.Enum('CHAT', 'EMAIL', 'SMS', 'OTHER', name='notificationchannel')
notification_status = sa.Enum(
    'PENDING', 'SENT', 'FAILED', 'PERMANENTLY_FAILED', 'ERROR', name='notificationstatus'
)
reminder_frequency = sa.Enum('ONCE', 'DAILY', 'WEEKLY', name='reminderfrequency')


def upgrade() -> None:
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('kind', notification_kind, nullable=False),
        sa.Column('template', sa.String(length=100), nullable=False),
        sa.Column('data', JSONType),
        sa.Column('channel', notification_channel, nullable=False),
        sa.Column('recipient', sa.String(length=500), nullable=False),
        sa.Column('server_id', sa.String(length=64)),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', notification_status, nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_attempt', sa.DateTime(timezone=True)),
        sa.Column('last_error', sa.String()),
        sa.Column('delivery_result', JSONType),
        sa.Column('delivered_at', sa.DateTime(timezone=True)),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('recurrence_pattern', sa.String(length=50)),
        sa.Column('recurrence_end_date', sa.DateTime(timezone=True)),
        sa.Column('previous_id', sa.Uuid()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_notifications_channel', 'notifications', ['channel'])
    op.create_index('ix_notifications_server_id', 'notifications', ['server_id'])
    op.create_index('ix_notifications_scheduled_for', 'notifications', ['scheduled_for'])
    op.create_index('ix_notifications_status', 'notifications', ['status'])

    op.create_table(
        'reminder_schedules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('task_id', sa.String(length=64), nullable=False),
        sa.Column('server_id', sa.String(length=64), nullable=False),
        sa.Column('frequency', reminder_frequency, nullable=False),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_reminder_schedules_task_id', 'reminder_schedules', ['task_id'])
    op.create_index('ix_reminder_schedules_server_id', 'reminder_schedules', ['server_id'])
    op.create_index('ix_reminder_schedules_scheduled_for', 'reminder_schedules', ['scheduled_for'])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('reminder_schedules')
    op.drop_table('notifications')

    # Drop enums (no-op outside PostgreSQL)
    bind = op.get_bind()
    reminder_frequency.drop(bind, checkfirst=True)
    notification_status.drop(bind, checkfirst=True)
    notification_channel.drop(bind, checkfirst=True)
    notification_kind.drop(bind, checkfirst=True)
