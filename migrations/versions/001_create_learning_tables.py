"""Create feedback learning tables

Revision ID: create_learning_tables
Revises:
Create Date: 2026-10-19

Users with their style profile, generated content carrying per-edit style
deltas, learning jobs with their dead letters, and profile version history.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'create_learning_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('style_profile', postgresql.JSONB, nullable=True),
        sa.Column('manual_overrides', postgresql.JSONB, nullable=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'contents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('platform', sa.String(50), nullable=False, server_default='x'),
        sa.Column('content_format', sa.String(20), nullable=False, server_default='single'),
        sa.Column('generated_text', sa.Text, nullable=False, server_default=''),
        sa.Column('edited_text', sa.Text, nullable=True),
        sa.Column('tweets', postgresql.JSONB, nullable=True),
        sa.Column('edit_metadata', postgresql.JSONB, nullable=True),
        sa.Column('edit_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_contents_user_id', 'contents', ['user_id'])
    op.create_index('idx_content_user_edit_timestamp', 'contents', ['user_id', 'edit_timestamp'])

    op.create_table(
        'learning_jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('content_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.Integer, nullable=False, server_default='0'),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('processing_started', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_completed', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error', sa.Text, nullable=True),
        sa.Column('style_delta', postgresql.JSONB, nullable=True),
        sa.Column('metadata', postgresql.JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_learning_jobs_user_id', 'learning_jobs', ['user_id'])
    op.create_index('ix_learning_jobs_content_id', 'learning_jobs', ['content_id'])
    op.create_index('ix_learning_jobs_status', 'learning_jobs', ['status'])
    op.create_index('idx_learning_job_user_status', 'learning_jobs', ['user_id', 'status'])
    op.create_index('idx_learning_job_status_created', 'learning_jobs', ['status', 'created_at'])

    op.create_table(
        'learning_dead_letters',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('job_id', sa.String(36), nullable=False, unique=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('content_id', sa.String(36), nullable=True),
        sa.Column('error', sa.Text, nullable=True),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('payload', postgresql.JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_learning_dead_letters_user_id', 'learning_dead_letters', ['user_id'])

    op.create_table(
        'profile_versions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('profile', postgresql.JSONB, nullable=False),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('learning_iterations', sa.Integer, nullable=False, server_default='0'),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_profile_version_user_timestamp', 'profile_versions', ['user_id', 'timestamp'])


def downgrade():
    op.drop_table('profile_versions')
    op.drop_table('learning_dead_letters')
    op.drop_table('learning_jobs')
    op.drop_table('contents')
    op.drop_table('users')
