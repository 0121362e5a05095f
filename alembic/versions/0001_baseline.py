"""Baseline migration - signup intake tables

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Creates submissions with their append-only step history, the dedup
claims, reference policies, the job queue and the security audit table.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Create signup intake tables."""

    # ==========================================================================
    # Submissions
    # ==========================================================================
    op.create_table(
        'submissions',
        sa.Column('client_identity', sa.String(64), primary_key=True),
        sa.Column('submission_id', sa.String(36), primary_key=True),
        sa.Column('form_name', sa.String(50), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', TS, nullable=False),
        sa.Column('updated_at', TS, nullable=False),
        sa.Column('verified_at', TS, nullable=True),
        sa.Column('completed_at', TS, nullable=True),
        sa.Column('processed_at', TS, nullable=True),
        sa.Column('phone_hash', sa.String(64), nullable=True),
        sa.Column('contact_envelope', sa.Text(), nullable=True),
        sa.Column('turnstile_validated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('country_code', sa.String(2), nullable=True),
        sa.Column('region', sa.String(20), nullable=True),
        sa.Column('country_classification', sa.String(20), nullable=False),
        sa.Column('builder_status', sa.String(20), nullable=True),
        sa.Column('destination_region', sa.String(20), nullable=True),
        sa.Column('external_id', sa.String(18), nullable=True, unique=True),
        sa.Column('verification_code', sa.Text(), nullable=True),
        sa.Column('verification_reference_id', sa.String(100), nullable=True),
        sa.Column('verification_channel', sa.String(10), nullable=True),
        sa.Column('verification_issued_at', TS, nullable=True),
        sa.Column('verification_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('enrichment_json', JSON, nullable=True),
        sa.Column('pending_review_reasons', JSON, nullable=False),
        sa.Column('submission_status_reason', sa.String(100), nullable=True),
        sa.Column('submission_flag', sa.String(10), nullable=True),
        sa.Column('spam_score', sa.Integer(), nullable=True),
        sa.Column('processing_error', sa.Text(), nullable=True),
    )
    op.create_index('uq_submissions_submission_id', 'submissions', ['submission_id'], unique=True)
    op.create_index('idx_submissions_phone_hash', 'submissions', ['phone_hash'])
    op.create_index(
        'idx_submissions_identity_form_completed',
        'submissions',
        ['client_identity', 'form_name', 'completed_at'],
    )
    op.create_index('idx_submissions_status_completed', 'submissions', ['status', 'completed_at'])

    # ==========================================================================
    # Step history (append-only)
    # ==========================================================================
    op.create_table(
        'submission_steps',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'submission_id',
            sa.String(36),
            sa.ForeignKey('submissions.submission_id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('step', sa.String(20), nullable=False),
        sa.Column('request_id', sa.String(64), nullable=False),
        sa.Column('status_after', sa.String(30), nullable=False),
        sa.Column('actor', JSON, nullable=False),
        sa.Column('geo', JSON, nullable=False),
        sa.Column('response', JSON, nullable=False),
        sa.Column('created_at', TS, nullable=False),
        sa.UniqueConstraint('submission_id', 'step', 'request_id', name='uq_submission_step_request'),
    )

    # ==========================================================================
    # Dedup claims
    # ==========================================================================
    op.create_table(
        'dedup_claims',
        sa.Column('message_id', sa.String(255), primary_key=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('content_digest', sa.String(64), nullable=False),
        sa.Column('claimed_at', TS, nullable=False),
        sa.Column('expires_at', TS, nullable=False),
        sa.Column('completed_at', TS, nullable=True),
    )
    op.create_index('idx_dedup_claims_expires', 'dedup_claims', ['expires_at'])

    # ==========================================================================
    # Reference policies
    # ==========================================================================
    op.create_table(
        'allow_block_entries',
        sa.Column('contact_type', sa.String(10), primary_key=True),
        sa.Column('contact_value', sa.String(255), primary_key=True),
        sa.Column('list_type', sa.String(10), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', TS, nullable=False),
    )
    op.create_table(
        'country_policies',
        sa.Column('country_code', sa.String(2), primary_key=True),
        sa.Column('policy_type', sa.String(20), nullable=False),
    )
    op.create_table(
        'domain_policies',
        sa.Column('domain', sa.String(255), primary_key=True),
        sa.Column('policy_type', sa.String(20), nullable=False),
    )

    # ==========================================================================
    # Job queue
    # ==========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('payload', JSON, nullable=False),
        sa.Column('run_at', TS, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', TS, nullable=False),
        sa.Column('completed_at', TS, nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
    )
    op.create_index('idx_jobs_pending', 'jobs', ['status', 'run_at'])
    op.create_index('uq_job_idempotency', 'jobs', ['idempotency_key'], unique=True)

    # ==========================================================================
    # Security audit
    # ==========================================================================
    op.create_table(
        'security_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('client_identity', sa.String(64), nullable=True),
        sa.Column('form_name', sa.String(50), nullable=True),
        sa.Column('details', JSON, nullable=True),
        sa.Column('created_at', TS, nullable=False),
    )
    op.create_index('idx_security_events_type_created', 'security_events', ['event_type', 'created_at'])


def downgrade() -> None:
    """Drop signup intake tables."""
    op.drop_table('security_events')
    op.drop_table('jobs')
    op.drop_table('domain_policies')
    op.drop_table('country_policies')
    op.drop_table('allow_block_entries')
    op.drop_table('dedup_claims')
    op.drop_table('submission_steps')
    op.drop_table('submissions')
