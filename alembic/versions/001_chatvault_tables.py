"""ChatVault tables: chats and incremental save jobs

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector

# revision identifiers
revision = '001'
down_revision = None  # This is the first migration
branch_labels = None
depends_on = None

EMBEDDING_DIMENSIONS = 1536


def upgrade():
    conn = op.get_bind()
    is_postgres = conn.dialect.name == "postgresql"

    if is_postgres:
        op.execute("CREATE EXTENSION IF NOT EXISTS vector")
        turns_type = postgresql.JSONB()
        embedding_type = Vector(EMBEDDING_DIMENSIONS)
    else:
        turns_type = sa.JSON()
        embedding_type = sa.JSON()

    op.create_table(
        'chats',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('title', sa.Text, nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('turns', turns_type, nullable=False),
        sa.Column('embedding', embedding_type, nullable=True),
        sa.Column('content_hash', sa.String(64), nullable=False),
        sa.UniqueConstraint('user_id', 'content_hash', name='chats_user_content_uidx'),
    )
    op.create_index('ix_chats_user_id', 'chats', ['user_id'])
    op.create_index('chats_user_id_timestamp_idx', 'chats', ['user_id', 'timestamp'])

    if is_postgres:
        # Approximate nearest-neighbour index for cosine ranking
        op.execute(
            "CREATE INDEX IF NOT EXISTS chats_embedding_hnsw_idx "
            "ON chats USING hnsw (embedding vector_cosine_ops)"
        )

    op.create_table(
        'chat_save_jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('title', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_chat_save_jobs_user_id', 'chat_save_jobs', ['user_id'])

    op.create_table(
        'chat_save_job_turns',
        sa.Column(
            'job_id',
            sa.String(36),
            sa.ForeignKey('chat_save_jobs.id', ondelete='CASCADE'),
            primary_key=True,
        ),
        sa.Column('turn_index', sa.Integer, primary_key=True, autoincrement=False),
        sa.Column('prompt', sa.Text, nullable=False),
        sa.Column('response', sa.Text, nullable=False),
    )


def downgrade():
    op.drop_table('chat_save_job_turns')
    op.drop_index('ix_chat_save_jobs_user_id', table_name='chat_save_jobs')
    op.drop_table('chat_save_jobs')
    op.execute("DROP INDEX IF EXISTS chats_embedding_hnsw_idx")
    op.drop_index('chats_user_id_timestamp_idx', table_name='chats')
    op.drop_index('ix_chats_user_id', table_name='chats')
    op.drop_table('chats')
