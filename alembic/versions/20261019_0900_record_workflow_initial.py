"""Record review workflow tables

Revision ID: 20261019_0900
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates tables for:
- users: Directory of authors, reviewers and approvers
- records: Versioned records with resource allocation fields
- approval_stages / approval_rules: Stage catalogue and amount rules
- record_approvals: One approval row per (record, stage)
- resource_adjustment_requests: Hours removal requests with reversal data
- audit_log_entries / record_changelog: Append-only history
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_0900_record_workflow_initial'
down_revision = None
branch_labels = None
depends_on = None


record_status = sa.Enum('draft', 'in_review', 'approved', 'rejected', name='recordstatus')
approval_status = sa.Enum('pending', 'approved', 'rejected', 'skipped', name='approvalstatus')
adjustment_status = sa.Enum('pending', 'approved', 'rejected', name='adjustmentstatus')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ===========================================
    # USERS
    # ===========================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False, server_default=''),
        sa.Column('role', sa.String(50), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # ===========================================
    # RECORDS
    # ===========================================
    op.create_table(
        'records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False, server_default=''),
        sa.Column('client_name', sa.String(255), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('opportunity_amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('status', record_status, nullable=False, server_default='draft'),
        sa.Column('allocated_hours', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('requirement_disabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('requirement_disabled_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requirement_disabled_approver_id', sa.Uuid(), nullable=True),
        sa.Column('hours_removed', sa.Numeric(10, 2), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('parent_id', sa.Uuid(), sa.ForeignKey('records.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_latest', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('author_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_records_status', 'records', ['status'])

    # ===========================================
    # APPROVAL STAGES AND RULES
    # ===========================================
    op.create_table(
        'approval_stages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('requires_comment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_approve', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('assigned_role', sa.String(50), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'approval_rules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, server_default=''),
        sa.Column('condition_type', sa.String(50), nullable=False, server_default='amount'),
        sa.Column('condition_value', sa.JSON(), nullable=False),
        sa.Column('stage_id', sa.Uuid(), sa.ForeignKey('approval_stages.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    # ===========================================
    # RECORD APPROVALS
    # ===========================================
    op.create_table(
        'record_approvals',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('record_id', sa.Uuid(), sa.ForeignKey('records.id', ondelete='CASCADE'), nullable=False),
        sa.Column('stage_id', sa.Uuid(), sa.ForeignKey('approval_stages.id'), nullable=False),
        sa.Column('status', approval_status, nullable=False, server_default='pending'),
        sa.Column('approver_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('skipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.UniqueConstraint('record_id', 'stage_id', name='uq_record_approvals_record_stage'),
    )
    op.create_index('ix_record_approvals_record_id', 'record_approvals', ['record_id'])
    op.create_index('ix_record_approvals_status', 'record_approvals', ['status'])

    # ===========================================
    # RESOURCE ADJUSTMENT REQUESTS
    # ===========================================
    op.create_table(
        'resource_adjustment_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('record_id', sa.Uuid(), nullable=False,
                  comment='No foreign key: requests outlive deleted records'),
        sa.Column('requester_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('reviewer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('current_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('requested_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('hours_to_remove', sa.Numeric(10, 2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', adjustment_status, nullable=False, server_default='pending'),
        sa.Column('approver_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_comments', sa.Text(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('record_snapshot', sa.JSON(), nullable=True,
                  comment='Record allocation fields captured before approval'),
        sa.Column('reversed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reversed_by_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reversal_reason', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_resource_adjustment_requests_record_id', 'resource_adjustment_requests', ['record_id'])
    op.create_index('ix_resource_adjustment_requests_status', 'resource_adjustment_requests', ['status'])

    op.create_table(
        'adjustment_request_comments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('request_id', sa.Uuid(),
                  sa.ForeignKey('resource_adjustment_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('parent_id', sa.Uuid(),
                  sa.ForeignKey('adjustment_request_comments.id', ondelete='CASCADE'), nullable=True),
        sa.Column('comment', sa.Text(), nullable=False),
        sa.Column('is_internal', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_adjustment_request_comments_request_id', 'adjustment_request_comments', ['request_id'])

    # ===========================================
    # AUDIT LOG AND CHANGELOG (append-only)
    # ===========================================
    op.create_table(
        'audit_log_entries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('record_id', sa.Uuid(), nullable=False),
        sa.Column('approval_id', sa.Uuid(), nullable=True),
        sa.Column('request_id', sa.Uuid(), nullable=True),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('previous_status', sa.String(50), nullable=True),
        sa.Column('new_status', sa.String(50), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_audit_log_entries_record_id', 'audit_log_entries', ['record_id'])
    op.create_index('ix_audit_log_entries_user_id', 'audit_log_entries', ['user_id'])
    op.create_index('ix_audit_log_entries_action', 'audit_log_entries', ['action'])
    op.create_index('ix_audit_log_entries_created_at', 'audit_log_entries', ['created_at'])

    op.create_table(
        'record_changelog',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('record_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(30), nullable=False),
        sa.Column('field_name', sa.String(100), nullable=True),
        sa.Column('previous_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('change_type', sa.String(30), nullable=False),
        sa.Column('diff_summary', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=True),
        sa.Column('parent_version_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_record_changelog_record_id', 'record_changelog', ['record_id'])
    op.create_index('ix_record_changelog_user_id', 'record_changelog', ['user_id'])
    op.create_index('ix_record_changelog_field_name', 'record_changelog', ['field_name'])
    op.create_index('ix_record_changelog_change_type', 'record_changelog', ['change_type'])
    op.create_index('ix_record_changelog_created_at', 'record_changelog', ['created_at'])


def downgrade() -> None:
    op.drop_table('record_changelog')
    op.drop_table('audit_log_entries')
    op.drop_table('adjustment_request_comments')
    op.drop_table('resource_adjustment_requests')
    op.drop_table('record_approvals')
    op.drop_table('approval_rules')
    op.drop_table('approval_stages')
    op.drop_table('records')
    op.drop_table('users')

    adjustment_status.drop(op.get_bind(), checkfirst=True)
    approval_status.drop(op.get_bind(), checkfirst=True)
    record_status.drop(op.get_bind(), checkfirst=True)
