"""initial inventory ledger schema

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates:
- organizations: tenant root
- products / locations: catalog reference data
- inventories: cached stock per (organization, product, location), unique on the triple
- inventory_transactions: append-only ledger, indexed by pair+created_at and by reference_id
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # organizations: tenant root
    # ============================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    # ============================================================================
    # products: catalog (avg_cost / last_purchase_cost written by the ledger)
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('stock_unit', sa.String(length=32), nullable=False, server_default='unit'),
        sa.Column('min_stock_level', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('max_stock_level', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('avg_cost', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('last_purchase_cost', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'sku', name='uq_products_org_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_organization_id', 'products', ['organization_id'])
    op.create_index('ix_products_org_name', 'products', ['organization_id', 'name'])

    # ============================================================================
    # locations
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='warehouse'),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'name', name='uq_locations_org_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_organization_id', 'locations', ['organization_id'])
    op.create_index('ix_locations_is_active', 'locations', ['is_active'])

    # ============================================================================
    # inventories: cached projection, one row per (organization, product, location)
    # ============================================================================
    op.create_table(
        'inventories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('current_stock', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('committed_stock', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('shelf_location', sa.String(length=64), nullable=True),
        sa.Column('last_count_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'product_id', 'location_id',
                            name='uq_inventories_org_product_location'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventories_organization_id', 'inventories', ['organization_id'])
    op.create_index('ix_inventories_product_id', 'inventories', ['product_id'])
    op.create_index('ix_inventories_location_id', 'inventories', ['location_id'])
    op.create_index('ix_inventories_org_location', 'inventories', ['organization_id', 'location_id'])

    # ============================================================================
    # inventory_transactions: append-only ledger
    # ============================================================================
    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Numeric(14, 4), nullable=False),
        sa.Column('unit_cost', sa.Numeric(14, 4), nullable=True),
        sa.Column('total_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('reference_id', sa.String(length=128), nullable=True),
        sa.Column('reference_type', sa.String(length=64), nullable=True),
        sa.Column('reason', sa.String(length=32), nullable=True),
        sa.Column('source_location_id', sa.Integer(), nullable=True),
        sa.Column('destination_location_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['source_location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['destination_location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_transactions_organization_id', 'inventory_transactions', ['organization_id'])
    op.create_index('ix_inventory_transactions_transaction_type', 'inventory_transactions', ['transaction_type'])
    op.create_index('ix_inventory_transactions_created_at', 'inventory_transactions', ['created_at'])
    op.create_index('ix_invtx_org_product_location_created', 'inventory_transactions',
                    ['organization_id', 'product_id', 'location_id', 'created_at'])
    op.create_index('ix_invtx_org_reference', 'inventory_transactions', ['organization_id', 'reference_id'])


def downgrade():
    op.drop_table('inventory_transactions')
    op.drop_table('inventories')
    op.drop_table('locations')
    op.drop_table('products')
    op.drop_table('organizations')
