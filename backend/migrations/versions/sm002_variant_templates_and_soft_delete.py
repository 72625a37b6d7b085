"""Variant templates and variant soft delete

1. product_variants.deleted_at: soft delete keeps ledger history attached
2. variant_templates: reusable attribute sets; tenant_id NULL = system template

Revision ID: sm002_templates_soft_delete
Revises: sm001_variant_matrix
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'sm002_templates_soft_delete'
down_revision = 'sm001_variant_matrix'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('product_variants', schema=None) as batch_op:
        batch_op.add_column(sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True))
        batch_op.create_index(batch_op.f('ix_product_variants_deleted_at'), ['deleted_at'], unique=False)

    op.create_table('variant_templates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('slug', sa.String(length=120), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('configuration', sa.JSON(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name=op.f('fk_variant_templates_tenant_id_tenants')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_variant_templates')),
        sa.UniqueConstraint('tenant_id', 'slug', name='uq_variant_templates_tenant_slug'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('variant_templates', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_variant_templates_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_variant_templates_category'), ['category'], unique=False)


def downgrade():
    op.drop_table('variant_templates')

    with op.batch_alter_table('product_variants', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_product_variants_deleted_at'))
        batch_op.drop_column('deleted_at')
