"""Baseline migration - profiles, executors, invitations, triggers, activity.

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates:
- profiles
- executors (partial unique index on open relationships)
- executor_invitations
- trigger_events
- documents
- activity_log
- executor_notifications
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # profiles
    # ==========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), server_default='planner', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    # ==========================================================================
    # executors
    # ==========================================================================
    op.create_table(
        'executors',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('planner_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('relationship', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['planner_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_executors_planner_email_open',
        'executors',
        ['planner_id', 'email'],
        unique=True,
        postgresql_where=sa.text("status <> 'revoked'"),
        sqlite_where=sa.text("status <> 'revoked'"),
    )
    op.create_index('idx_executors_email_status', 'executors', ['email', 'status'])

    # ==========================================================================
    # executor_invitations
    # ==========================================================================
    op.create_table(
        'executor_invitations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('executor_id', sa.Uuid(), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['executor_id'], ['executors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
    )
    op.create_index('ix_executor_invitations_executor_id', 'executor_invitations', ['executor_id'])

    # ==========================================================================
    # trigger_events
    # ==========================================================================
    op.create_table(
        'trigger_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('executor_id', sa.Uuid(), nullable=True),
        sa.Column('type', sa.String(20), server_default='death', nullable=False),
        sa.Column('verification_method', sa.String(20), server_default='professional', nullable=False),
        sa.Column('verification_details', sa.Text(), nullable=True),
        sa.Column('triggered', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('triggered_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['executor_id'], ['executors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_trigger_events_pair_type', 'trigger_events', ['user_id', 'executor_id', 'type'])

    # ==========================================================================
    # documents
    # ==========================================================================
    op.create_table(
        'documents',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(30), server_default='other', nullable=False),
        sa.Column('file_path', sa.String(500), nullable=False),
        sa.Column('content_type', sa.String(100), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('checksum_sha256', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('file_path'),
    )
    op.create_index('ix_documents_user_id', 'documents', ['user_id'])

    # ==========================================================================
    # activity_log (append-only)
    # ==========================================================================
    op.create_table(
        'activity_log',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('action_type', sa.String(50), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_activity_user_created', 'activity_log', ['user_id', 'created_at'])

    # ==========================================================================
    # executor_notifications
    # ==========================================================================
    op.create_table(
        'executor_notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('executor_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(20), server_default='general', nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['executor_id'], ['executors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_executor_notifications_executor_id', 'executor_notifications', ['executor_id'])


def downgrade() -> None:
    op.drop_table('executor_notifications')
    op.drop_table('activity_log')
    op.drop_table('documents')
    op.drop_table('trigger_events')
    op.drop_table('executor_invitations')
    op.drop_index('idx_executors_email_status', table_name='executors')
    op.drop_index('uq_executors_planner_email_open', table_name='executors')
    op.drop_table('executors')
    op.drop_table('profiles')
