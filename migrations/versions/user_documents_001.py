"""Create user_documents

Revision ID: user_documents_001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'user_documents_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user_documents',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('collection', sa.String(length=32), nullable=False),
        sa.Column('doc_id', sa.String(length=128), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'collection', 'doc_id', name='uq_user_document')
    )
    op.create_index('ix_user_documents_user_id', 'user_documents', ['user_id'])
    op.create_index('ix_user_documents_user_collection', 'user_documents', ['user_id', 'collection'])


def downgrade():
    op.drop_index('ix_user_documents_user_collection', table_name='user_documents')
    op.drop_index('ix_user_documents_user_id', table_name='user_documents')
    op.drop_table('user_documents')
