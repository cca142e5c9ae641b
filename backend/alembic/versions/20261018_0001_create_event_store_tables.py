"""Create event_documents and oauth_tokens tables

Revision ID: event_store_001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = 'event_store_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Event log for Starling webhooks / Etsy ledger entries, plus OAuth tokens"""

    op.create_table(
        'event_documents',
        sa.Column('collection', sa.String(128), primary_key=True),
        sa.Column('document_id', sa.String(128), primary_key=True),
        sa.Column('body', JSONB, nullable=False),
        sa.Column('headers', JSONB, nullable=True),
        sa.Column('created_timestamp', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    # Backs the "newest ledger entry" cursor query.
    op.create_index(
        'idx_event_documents_collection_created_ts',
        'event_documents',
        ['collection', 'created_timestamp'],
    )

    op.create_table(
        'oauth_tokens',
        sa.Column('provider', sa.String(32), primary_key=True),
        sa.Column('account_id', sa.String(64), primary_key=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )


def downgrade() -> None:
    op.drop_table('oauth_tokens')
    op.drop_index('idx_event_documents_collection_created_ts', table_name='event_documents')
    op.drop_table('event_documents')
