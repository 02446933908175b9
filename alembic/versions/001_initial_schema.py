"""initial_schema_profiles_and_analysis_results

Revision ID: 001
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Usage state per identity-provider user
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('is_premium', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('language', sa.String(8), nullable=False, server_default='ja'),
        sa.Column('free_credits', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('credits_reset_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pro_monthly_usage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pro_usage_reset_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_profiles_id'), 'profiles', ['id'], unique=False)

    # Append-only diagnosis cache
    op.create_table(
        'analysis_results',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('url_hash', sa.String(64), nullable=False),
        sa.Column('content_hash', sa.String(64), nullable=False),
        sa.Column('language', sa.String(8), nullable=False),
        sa.Column('model', sa.String(128), nullable=True),
        sa.Column('overall_score', sa.Integer(), nullable=True),
        sa.Column('detail_scores', sa.JSON(), nullable=True),
        sa.Column('advice_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_analysis_results_id'), 'analysis_results', ['id'], unique=False)
    op.create_index(op.f('ix_analysis_results_url_hash'), 'analysis_results', ['url_hash'], unique=False)
    op.create_index(op.f('ix_analysis_results_content_hash'), 'analysis_results', ['content_hash'], unique=False)
    op.create_index(
        'idx_analysis_results_key',
        'analysis_results',
        ['url_hash', 'content_hash', 'language', 'created_at'],
        unique=False,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_analysis_results_key', table_name='analysis_results')
    op.drop_index(op.f('ix_analysis_results_content_hash'), table_name='analysis_results')
    op.drop_index(op.f('ix_analysis_results_url_hash'), table_name='analysis_results')
    op.drop_index(op.f('ix_analysis_results_id'), table_name='analysis_results')
    op.drop_table('analysis_results')
    op.drop_index(op.f('ix_profiles_id'), table_name='profiles')
    op.drop_table('profiles')
