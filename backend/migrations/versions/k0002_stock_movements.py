"""stock movement ledger

Revision ID: k0002
Revises: k0001
Create Date: 2026-10-17 00:00:00.000000

Adds stock_movements: one row per successful stock change (manual
adjustment or order creation) with before/after levels and a reference
to the originating transaction.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'k0002'
down_revision = 'k0001'
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # stock_movements: append-only, written with the product UPDATE
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('before_qty', sa.Integer(), nullable=False),
        sa.Column('after_qty', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(length=32), nullable=False, server_default='MANUAL'),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_movements_quantity_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_tenant_id', 'stock_movements', ['tenant_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_tenant_product_created', 'stock_movements',
                    ['tenant_id', 'product_id', 'created_at'])
    op.create_index('ix_stock_movements_reference', 'stock_movements',
                    ['reference_type', 'reference_id'])


def downgrade():
    op.drop_table('stock_movements')
