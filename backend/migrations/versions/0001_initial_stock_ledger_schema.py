"""initial stock ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the complete schema:
- companies / users: tenants and the identities movements point at
- customers / suppliers: transaction counterparties
- products: master data with the current_stock projection
- locations: hierarchical stock pools with optional capacity
- transactions / transaction_items / transaction_payments
- inventory_movements: append-only stock ledger
- product_batches: lots stored at a location
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    cols = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]
    if updated:
        cols.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP'))
        )
    return cols


def upgrade():
    # ============================================================================
    # companies / users
    # ============================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_companies_code', 'companies', ['code'], unique=True)
    op.create_index('ix_companies_is_active', 'companies', ['is_active'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'email', name='uq_users_company_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])

    # ============================================================================
    # customers / suppliers
    # ============================================================================
    for table in ('customers', 'suppliers'):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('company_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('document', sa.String(length=64), nullable=True),
            sa.Column('email', sa.String(length=255), nullable=True),
            sa.Column('phone', sa.String(length=32), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
            *_timestamps(),
            sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sqlite_autoincrement=True
        )
        op.create_index(f'ix_{table}_company_id', table, ['company_id'])
        op.create_index(f'ix_{table}_is_active', table, ['is_active'])
        op.create_index(f'ix_{table}_company_active', table, ['company_id', 'is_active'])

    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cost_price_cents', sa.Integer(), nullable=True),
        sa.Column('selling_price_cents', sa.Integer(), nullable=True),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'sku', name='uq_products_company_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_company_id', 'products', ['company_id'])
    op.create_index('ix_products_company_name', 'products', ['company_id', 'name'])
    op.create_index('ix_products_company_active', 'products', ['company_id', 'is_active'])

    # ============================================================================
    # locations: tree of stock pools
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='WAREHOUSE'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('state', sa.String(length=64), nullable=True),
        sa.Column('zip_code', sa.String(length=16), nullable=True),
        sa.Column('country', sa.String(length=64), nullable=True),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('capacity', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('current_stock >= 0', name='ck_locations_stock_non_negative'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['parent_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'code', name='uq_locations_company_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_company_id', 'locations', ['company_id'])
    op.create_index('ix_locations_parent_id', 'locations', ['parent_id'])
    op.create_index('ix_locations_type', 'locations', ['type'])
    op.create_index('ix_locations_is_active', 'locations', ['is_active'])
    op.create_index('ix_locations_company_type_name', 'locations', ['company_id', 'type', 'name'])

    # ============================================================================
    # transactions
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shipping_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('discount_cents >= 0', name='ck_transactions_discount_non_negative'),
        sa.CheckConstraint('tax_cents >= 0', name='ck_transactions_tax_non_negative'),
        sa.CheckConstraint('shipping_cost_cents >= 0', name='ck_transactions_shipping_non_negative'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transactions') as batch_op:
        batch_op.create_index('ix_transactions_company_id', ['company_id'])
        batch_op.create_index('ix_transactions_status', ['status'])
        batch_op.create_index('ix_transactions_customer_id', ['customer_id'])
        batch_op.create_index('ix_transactions_supplier_id', ['supplier_id'])
        batch_op.create_index('ix_transactions_user_id', ['user_id'])
        batch_op.create_index('ix_transactions_deleted_at', ['deleted_at'])
        batch_op.create_index('ix_transactions_company_date', ['company_id', 'transaction_date'])
        batch_op.create_index('ix_transactions_company_type', ['company_id', 'type'])
        batch_op.create_index('ix_transactions_company_payment_status', ['company_id', 'payment_status'])

    op.create_table(
        'transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.String(length=255), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint('quantity >= 1', name='ck_transaction_items_quantity_positive'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_transaction_items_price_non_negative'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])
    op.create_index('ix_transaction_items_product_id', 'transaction_items', ['product_id'])

    op.create_table(
        'transaction_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        *_timestamps(updated=False),
        sa.CheckConstraint('amount_cents >= 0', name='ck_transaction_payments_amount_non_negative'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_payments_transaction_id', 'transaction_payments', ['transaction_id'])

    # ============================================================================
    # inventory_movements: append-only ledger
    # ============================================================================
    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('total_cost_cents', sa.Integer(), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('from_location_id', sa.Integer(), nullable=True),
        sa.Column('to_location_id', sa.Integer(), nullable=True),
        sa.Column('reverses_movement_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['from_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['to_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['reverses_movement_id'], ['inventory_movements.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_movements') as batch_op:
        for column in ('company_id', 'product_id', 'type', 'reason', 'transaction_id',
                       'from_location_id', 'to_location_id', 'reverses_movement_id',
                       'user_id', 'movement_date'):
            batch_op.create_index(f'ix_inventory_movements_{column}', [column])
        batch_op.create_index('ix_invmov_company_product_id', ['company_id', 'product_id', 'id'])
        batch_op.create_index('ix_invmov_company_reason_date', ['company_id', 'reason', 'movement_date'])

    # ============================================================================
    # product_batches
    # ============================================================================
    op.create_table(
        'product_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('batch_number', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'product_id', 'batch_number', name='uq_batches_company_product_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_batches_company_id', 'product_batches', ['company_id'])
    op.create_index('ix_product_batches_product_id', 'product_batches', ['product_id'])
    op.create_index('ix_product_batches_location_id', 'product_batches', ['location_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('product_batches')
    op.drop_table('inventory_movements')
    op.drop_table('transaction_payments')
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('locations')
    op.drop_table('products')
    op.drop_table('suppliers')
    op.drop_table('customers')
    op.drop_table('users')
    op.drop_table('companies')
