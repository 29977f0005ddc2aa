"""Create candidates and parsed_resume_data tables

Revision ID: c3d4e5f6a7b8
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'c3d4e5f6a7b8'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - Add candidates and parsed_resume_data tables."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)

    if 'candidates' not in inspector.get_table_names():
        op.create_table('candidates',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('first_name', sa.String(), nullable=True),
            sa.Column('last_name', sa.String(), nullable=True),
            sa.Column('phone', sa.String(), nullable=True),
            sa.Column('location', sa.String(), nullable=True),
            sa.Column('linkedin_url', sa.String(), nullable=True),
            sa.Column('portfolio_url', sa.String(), nullable=True),
            sa.Column('resume_url', sa.String(), nullable=True),
            sa.Column('consent_given', sa.Boolean(), nullable=False, server_default=sa.text('false')),
            sa.Column('consent_date', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_candidates_email'), 'candidates', ['email'], unique=True)

    if 'parsed_resume_data' not in inspector.get_table_names():
        op.create_table('parsed_resume_data',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('candidate_id', sa.String(length=36), nullable=False),
            sa.Column('skills', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
            sa.Column('experience', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
            sa.Column('education', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
            sa.Column('certifications', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
            sa.Column('summary', sa.Text(), nullable=True),
            sa.Column('total_experience', sa.Float(), nullable=False, server_default='0'),
            sa.Column('raw_text', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
            sa.ForeignKeyConstraint(['candidate_id'], ['candidates.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_parsed_resume_data_candidate_id'), 'parsed_resume_data', ['candidate_id'], unique=True)


def downgrade() -> None:
    """Downgrade schema - Remove resume pipeline tables."""
    op.drop_index(op.f('ix_parsed_resume_data_candidate_id'), table_name='parsed_resume_data')
    op.drop_table('parsed_resume_data')
    op.drop_index(op.f('ix_candidates_email'), table_name='candidates')
    op.drop_table('candidates')
