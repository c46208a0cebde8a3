"""Create concept graph tables

Revision ID: 0001_concept_graph
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_concept_graph'
down_revision = None
branch_labels = None
depends_on = None

BRANCH_TYPES = "'constructive', 'critique', 'author', 'wildcard'"


def upgrade() -> None:
    """Create concepts, edges, user_generation_log and branch_analytics."""
    op.create_table(
        'concepts',
        sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('recommended_reading', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('has_embedding', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug', name='concepts_slug_key'),
    )
    op.create_index('ix_concepts_name', 'concepts', ['name'])
    op.create_index('ix_concepts_has_embedding', 'concepts', ['has_embedding'])

    op.create_table(
        'edges',
        sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('source_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('target_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('branch_type', sa.String(32), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['source_id'], ['concepts.id']),
        sa.ForeignKeyConstraint(['target_id'], ['concepts.id']),
        sa.UniqueConstraint('source_id', 'target_id', name='uq_edges_source_target'),
        sa.CheckConstraint(f"branch_type IN ({BRANCH_TYPES})", name='ck_edges_branch_type'),
        sa.CheckConstraint('source_id <> target_id', name='ck_edges_no_self_loop'),
    )
    op.create_index('ix_edges_source_id', 'edges', ['source_id'])
    op.create_index('ix_edges_target_id', 'edges', ['target_id'])
    op.create_index('ix_edges_source_created', 'edges', ['source_id', 'created_at'])

    op.create_table(
        'user_generation_log',
        sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_user_generation_log_user_created',
        'user_generation_log',
        ['user_id', 'created_at'],
    )

    op.create_table(
        'branch_analytics',
        sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('concept_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('branch_type', sa.String(32), nullable=False),
        sa.Column('chosen_count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['concept_id'], ['concepts.id']),
        sa.UniqueConstraint('concept_id', 'branch_type', name='uq_branch_analytics_concept_type'),
        sa.CheckConstraint(f"branch_type IN ({BRANCH_TYPES})", name='ck_branch_analytics_branch_type'),
    )
    op.create_index('ix_branch_analytics_concept_id', 'branch_analytics', ['concept_id'])


def downgrade() -> None:
    """Drop concept graph tables."""
    op.drop_index('ix_branch_analytics_concept_id', table_name='branch_analytics')
    op.drop_table('branch_analytics')
    op.drop_index('ix_user_generation_log_user_created', table_name='user_generation_log')
    op.drop_table('user_generation_log')
    op.drop_index('ix_edges_source_created', table_name='edges')
    op.drop_index('ix_edges_target_id', table_name='edges')
    op.drop_index('ix_edges_source_id', table_name='edges')
    op.drop_table('edges')
    op.drop_index('ix_concepts_has_embedding', table_name='concepts')
    op.drop_index('ix_concepts_name', table_name='concepts')
    op.drop_table('concepts')
