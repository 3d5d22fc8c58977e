"""create mission order lifecycle tables

Revision ID: c1a7e0f3b2d4
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c1a7e0f3b2d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TIMESTAMPS = (
    'finance_approved_at',
    'owner_approved_at',
    'owner_rejected_at',
    'client_email_sent_at',
    'client_approved_at',
    'client_rejected_at',
    'approved_at',
    'rejected_at',
    'assigned_to_crew_at',
    'execution_started_at',
    'execution_completed_at',
    'validation_requested_at',
    'validated_at',
    'date_modification_requested_at',
    'completed_at',
    'cancelled_at',
)


def upgrade() -> None:
    op.create_table(
        'mission_orders',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('workflow', sa.String(length=16), nullable=False, server_default='gated'),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('crew', sa.JSON(), nullable=False),
        sa.Column('aircraft', sa.JSON(), nullable=False),
        sa.Column('flights', sa.JSON(), nullable=False),
        sa.Column('contract', sa.JSON(), nullable=False),
        sa.Column('crew_id', sa.String(length=64), nullable=True),
        sa.Column('email_data', sa.JSON(), nullable=True),
        sa.Column('finance_decision', sa.JSON(), nullable=True),
        sa.Column('owner_decision', sa.JSON(), nullable=True),
        sa.Column('client_response', sa.JSON(), nullable=True),
        sa.Column('validation', sa.JSON(), nullable=True),
        sa.Column('service_invoice', sa.JSON(), nullable=True),
        sa.Column('actual_end_date', sa.Date(), nullable=True),
        sa.Column('was_extended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('extension_reason', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        *[sa.Column(name, sa.DateTime(), nullable=True) for name in TIMESTAMPS],
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_mission_orders_status', 'mission_orders', ['status'])
    op.create_index('ix_mission_orders_crew_id', 'mission_orders', ['crew_id'])
    op.create_index('ix_mission_orders_status_assigned', 'mission_orders', ['status', 'assigned_to_crew_at'])

    op.create_table(
        'date_modifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('mission_id', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('original_start_date', sa.Date(), nullable=False),
        sa.Column('original_end_date', sa.Date(), nullable=False),
        sa.Column('new_start_date', sa.Date(), nullable=False),
        sa.Column('new_end_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('previous_status', sa.String(length=32), nullable=False),
        sa.Column('requested_by', sa.String(length=64), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_by', sa.String(length=64), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('approver_comment', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['mission_id'], ['mission_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    # one open request per mission
    op.create_index(
        'uq_date_modifications_one_pending',
        'date_modifications',
        ['mission_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('target_user_id', sa.String(length=64), nullable=True),
        sa.Column('target_role', sa.String(length=16), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('urgency', sa.String(length=16), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_entity_category', 'notifications', ['entity_id', 'category'])
    op.create_index('ix_notifications_target', 'notifications', ['target_user_id', 'target_role'])

    op.create_table(
        'activity_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('mission_id', sa.String(length=32), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_activity_log_mission_id', 'activity_log', ['mission_id'])


def downgrade() -> None:
    op.drop_index('ix_activity_log_mission_id', table_name='activity_log')
    op.drop_table('activity_log')
    op.drop_index('ix_notifications_target', table_name='notifications')
    op.drop_index('ix_notifications_entity_category', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('uq_date_modifications_one_pending', table_name='date_modifications')
    op.drop_table('date_modifications')
    op.drop_index('ix_mission_orders_status_assigned', table_name='mission_orders')
    op.drop_index('ix_mission_orders_crew_id', table_name='mission_orders')
    op.drop_index('ix_mission_orders_status', table_name='mission_orders')
    op.drop_table('mission_orders')
