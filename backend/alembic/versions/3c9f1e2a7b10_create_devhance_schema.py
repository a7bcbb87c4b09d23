"""create case study, payment and report tables

Revision ID: 3c9f1e2a7b10
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c9f1e2a7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('github_id', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_github_id'), ['github_id'], unique=True)

    # One row per user at most: the unique owner_id is the lock
    op.create_table('analysis_locks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('repo_url', sa.String(length=512), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('analysis_locks', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_analysis_locks_owner_id'), ['owner_id'], unique=True)

    op.create_table('repo_contexts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repo_url', sa.String(length=512), nullable=False),
        sa.Column('owner_login', sa.String(length=100), nullable=False),
        sa.Column('repo_name', sa.String(length=100), nullable=False),
        sa.Column('star_count', sa.Integer(), nullable=False),
        sa.Column('default_branch', sa.String(length=100), nullable=True),
        sa.Column('context_text', sa.Text(), nullable=False),
        sa.Column('repo_metadata', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('repo_contexts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_repo_contexts_id'), ['id'], unique=False)
        batch_op.create_index(batch_op.f('ix_repo_contexts_repo_url'), ['repo_url'], unique=True)

    op.create_table('case_studies',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('repo_url', sa.String(length=512), nullable=False),
        sa.Column('slug', sa.String(length=200), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('problem_summary', sa.Text(), nullable=False),
        sa.Column('solution_summary', sa.Text(), nullable=False),
        sa.Column('tech_stack', sa.Text(), nullable=False),
        sa.Column('architecture_overview', sa.Text(), nullable=False),
        sa.Column('core_features', sa.JSON(), nullable=False),
        sa.Column('challenges_and_solutions', sa.Text(), nullable=False),
        sa.Column('impact', sa.Text(), nullable=False),
        sa.Column('proof_data', sa.JSON(), nullable=False),
        sa.Column('key_folders', sa.JSON(), nullable=False),
        sa.Column('total_commits', sa.Integer(), nullable=False),
        sa.Column('active_period', sa.String(length=100), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('case_studies', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_case_studies_repo_url'), ['repo_url'], unique=True)
        batch_op.create_index(batch_op.f('ix_case_studies_slug'), ['slug'], unique=True)
        batch_op.create_index(batch_op.f('ix_case_studies_owner_id'), ['owner_id'], unique=False)

    op.create_table('vc_reports',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('case_study_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('scores', sa.JSON(), nullable=False),
        sa.Column('narrative_sections', sa.JSON(), nullable=False),
        sa.Column('verdict', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['case_study_id'], ['case_studies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('vc_reports', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_vc_reports_case_study_id'), ['case_study_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_vc_reports_user_id'), ['user_id'], unique=False)

    op.create_table('payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('case_study_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('external_order_id', sa.String(length=100), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('checkout_id', sa.String(length=100), nullable=True),
        sa.Column('report_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['case_study_id'], ['case_studies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['report_id'], ['vc_reports.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_external_order_id'), ['external_order_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_payments_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_case_study_id'), ['case_study_id'], unique=False)


def downgrade() -> None:
    op.drop_table('payments')
    op.drop_table('vc_reports')
    op.drop_table('case_studies')
    op.drop_table('repo_contexts')
    op.drop_table('analysis_locks')
    op.drop_table('users')
