"""Initial database migration - Create reports table

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'reports',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.Integer, nullable=False),
        sa.Column('original_filename', sa.String(255), nullable=False),
        sa.Column('storage_path', sa.String(1024), nullable=False),
        sa.Column('declared_file_type', sa.String(255), nullable=False),
        sa.Column('file_size_bytes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('processing_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('analysis_payload', sa.Text, nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "processing_status IN ('pending', 'processing', 'completed', 'failed')",
            name='ck_reports_processing_status',
        ),
    )

    # Indexes
    op.create_index('ix_reports_owner_id', 'reports', ['owner_id'])
    op.create_index('ix_reports_processing_status', 'reports', ['processing_status'])
    op.create_index('ix_reports_owner_uploaded', 'reports', ['owner_id', 'uploaded_at'])


def downgrade() -> None:
    op.drop_index('ix_reports_owner_uploaded')
    op.drop_index('ix_reports_processing_status')
    op.drop_index('ix_reports_owner_id')
    op.drop_table('reports')
