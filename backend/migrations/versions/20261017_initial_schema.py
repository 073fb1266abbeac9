"""initial branch stock schema

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the complete schema from scratch:
- shops, branches: tenants and their stock locations
- products: catalog plus the shop's default stock pool
- branch_stock: one ledger row per (product, branch)
- stock_adjustments: append-only change log
- stock_transfers, transfer_items, document_sequences: transfer workflow
- orders, order_items, order_payments, stock_sync_jobs: checkout and the
  stock deduction outbox
- reconciliations, variance_records, stock_reconciliations: cash and count
  reconciliation
- audit_events: default audit sink storage

Constraint names follow extensions.NAMING_CONVENTION so batch migrations
can find them later.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261017_initial'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # Tenancy
    # ============================================================================
    op.create_table(
        'shops',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_shops')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_shops_code'), 'shops', ['code'], unique=True)
    op.create_index(op.f('ix_shops_is_active'), 'shops', ['is_active'])

    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('branch_type', sa.String(length=16), nullable=False),
        sa.Column('can_transfer_stock', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_branches_shop_id_shops')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_branches')),
        sa.UniqueConstraint('shop_id', 'code', name='uq_branches_shop_code'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_branches_shop_id'), 'branches', ['shop_id'])

    # ============================================================================
    # Catalog and ledger
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        # Default stock pool
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_products_shop_id_shops')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
        sa.UniqueConstraint('shop_id', 'sku', name='uq_products_shop_sku'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_products_shop_id'), 'products', ['shop_id'])
    op.create_index(op.f('ix_products_barcode'), 'products', ['barcode'])
    op.create_index(op.f('ix_products_status'), 'products', ['status'])
    op.create_index('ix_products_shop_name', 'products', ['shop_id', 'name'])

    op.create_table(
        'branch_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reorder_point', sa.Integer(), nullable=True),
        sa.Column('reorder_quantity', sa.Integer(), nullable=True),
        sa.Column('last_restock_date', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_branch_stock_shop_id_shops')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_branch_stock_product_id_products')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name=op.f('fk_branch_stock_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_branch_stock')),
        # One ledger row per key; lazy seeding relies on this
        sa.UniqueConstraint('product_id', 'branch_id', name='uq_branch_stock_product_branch'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_branch_stock_product_id'), 'branch_stock', ['product_id'])
    op.create_index('ix_branch_stock_shop_branch', 'branch_stock', ['shop_id', 'branch_id'])

    op.create_table(
        'stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        # NULL means the default pool
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('resulting_quantity', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_stock_adjustments_shop_id_shops')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_stock_adjustments_product_id_products')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'],
                                name=op.f('fk_stock_adjustments_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_adjustments')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_stock_adjustments_shop_id'), 'stock_adjustments', ['shop_id'])
    op.create_index(op.f('ix_stock_adjustments_reference'), 'stock_adjustments', ['reference'])
    op.create_index('ix_stock_adj_shop_product_created', 'stock_adjustments',
                    ['shop_id', 'product_id', 'created_at'])
    op.create_index('ix_stock_adj_shop_reason', 'stock_adjustments', ['shop_id', 'reason'])

    # ============================================================================
    # Transfers
    # ============================================================================
    op.create_table(
        'stock_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('transfer_number', sa.String(length=32), nullable=False),
        sa.Column('from_branch_id', sa.Integer(), nullable=True),
        sa.Column('from_branch_name', sa.String(length=120), nullable=False),
        sa.Column('is_from_main_store', sa.Boolean(), nullable=False),
        sa.Column('to_branch_id', sa.Integer(), nullable=True),
        sa.Column('to_branch_name', sa.String(length=120), nullable=False),
        sa.Column('is_to_main_store', sa.Boolean(), nullable=False),
        sa.Column('transfer_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('requested_by', sa.Integer(), nullable=False),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_notes', sa.Text(), nullable=True),
        sa.Column('shipped_by', sa.Integer(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=True),
        sa.Column('carrier', sa.String(length=64), nullable=True),
        sa.Column('expected_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_by', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('receipt_notes', sa.Text(), nullable=True),
        sa.Column('rejected_by', sa.Integer(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('total_value_cents', sa.Integer(), nullable=False),
        # Guard column for conditional status transitions
        sa.Column('version_id', sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            '(is_from_main_store AND from_branch_id IS NULL) OR '
            '(NOT is_from_main_store AND from_branch_id IS NOT NULL)',
            name=op.f('ck_stock_transfers_source_location'),
        ),
        sa.CheckConstraint(
            '(is_to_main_store AND to_branch_id IS NULL) OR '
            '(NOT is_to_main_store AND to_branch_id IS NOT NULL)',
            name=op.f('ck_stock_transfers_destination_location'),
        ),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_stock_transfers_shop_id_shops')),
        sa.ForeignKeyConstraint(['from_branch_id'], ['branches.id'],
                                name=op.f('fk_stock_transfers_from_branch_id_branches')),
        sa.ForeignKeyConstraint(['to_branch_id'], ['branches.id'],
                                name=op.f('fk_stock_transfers_to_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_transfers')),
        sa.UniqueConstraint('shop_id', 'transfer_number', name='uq_stock_transfers_shop_number'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_stock_transfers_shop_id'), 'stock_transfers', ['shop_id'])
    op.create_index(op.f('ix_stock_transfers_from_branch_id'), 'stock_transfers', ['from_branch_id'])
    op.create_index(op.f('ix_stock_transfers_to_branch_id'), 'stock_transfers', ['to_branch_id'])
    op.create_index('ix_stock_transfers_shop_status', 'stock_transfers', ['shop_id', 'status'])
    op.create_index('ix_stock_transfers_shop_created', 'stock_transfers', ['shop_id', 'created_at'])

    op.create_table(
        'transfer_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('received_quantity', sa.Integer(), nullable=False),
        sa.Column('damaged_quantity', sa.Integer(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('quantity > 0', name=op.f('ck_transfer_items_quantity_positive')),
        sa.CheckConstraint('received_quantity >= 0 AND received_quantity <= quantity',
                           name=op.f('ck_transfer_items_received_bounds')),
        sa.CheckConstraint('damaged_quantity >= 0 AND damaged_quantity <= received_quantity',
                           name=op.f('ck_transfer_items_damaged_bounds')),
        sa.ForeignKeyConstraint(['transfer_id'], ['stock_transfers.id'],
                                name=op.f('fk_transfer_items_transfer_id_stock_transfers')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_transfer_items_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_transfer_items')),
        sa.UniqueConstraint('transfer_id', 'product_id', name='uq_transfer_items_transfer_product'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_transfer_items_transfer_id'), 'transfer_items', ['transfer_id'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('period', sa.String(length=16), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_document_sequences_shop_id_shops')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_document_sequences')),
        sa.UniqueConstraint('shop_id', 'document_type', 'period', name='uq_doc_sequences_shop_type_period'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_document_sequences_shop_id'), 'document_sequences', ['shop_id'])

    # ============================================================================
    # Checkout and stock sync outbox
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('inventory_warning', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_orders_shop_id_shops')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name=op.f('fk_orders_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_orders')),
        sa.UniqueConstraint('shop_id', 'order_number', name='uq_orders_shop_number'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_orders_shop_id'), 'orders', ['shop_id'])
    op.create_index(op.f('ix_orders_branch_id'), 'orders', ['branch_id'])
    op.create_index(op.f('ix_orders_payment_status'), 'orders', ['payment_status'])
    op.create_index('ix_orders_shop_created', 'orders', ['shop_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_order_items_order_id_orders')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_order_items_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_order_items')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_order_items_order_id'), 'order_items', ['order_id'])

    op.create_table(
        'order_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_order_payments_order_id_orders')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_order_payments')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_order_payments_order_id'), 'order_payments', ['order_id'])
    op.create_index(op.f('ix_order_payments_method'), 'order_payments', ['method'])

    op.create_table(
        'stock_sync_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('adjustment_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_stock_sync_jobs_shop_id_shops')),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_stock_sync_jobs_order_id_orders')),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id'],
                                name=op.f('fk_stock_sync_jobs_order_item_id_order_items')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_stock_sync_jobs_product_id_products')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'],
                                name=op.f('fk_stock_sync_jobs_branch_id_branches')),
        sa.ForeignKeyConstraint(['adjustment_id'], ['stock_adjustments.id'],
                                name=op.f('fk_stock_sync_jobs_adjustment_id_stock_adjustments')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_sync_jobs')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_stock_sync_jobs_shop_id'), 'stock_sync_jobs', ['shop_id'])
    op.create_index(op.f('ix_stock_sync_jobs_order_id'), 'stock_sync_jobs', ['order_id'])
    op.create_index('ix_stock_sync_jobs_status_next', 'stock_sync_jobs', ['status', 'next_attempt_at'])

    # ============================================================================
    # Reconciliation
    # ============================================================================
    op.create_table(
        'reconciliations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('reconciliation_date', sa.Date(), nullable=False),
        sa.Column('expected_cash_cents', sa.Integer(), nullable=False),
        sa.Column('actual_cash_cents', sa.Integer(), nullable=False),
        sa.Column('variance_cents', sa.Integer(), nullable=False),
        sa.Column('variance_percentage', sa.Float(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('reconciliation_notes', sa.Text(), nullable=True),
        sa.Column('reconciled_by', sa.Integer(), nullable=False),
        sa.Column('reconciliation_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approval_time', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_reconciliations_shop_id_shops')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_reconciliations')),
        sa.UniqueConstraint('shop_id', 'reconciliation_date', name='uq_reconciliations_shop_date'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_reconciliations_shop_id'), 'reconciliations', ['shop_id'])
    op.create_index(op.f('ix_reconciliations_reconciliation_date'), 'reconciliations', ['reconciliation_date'])
    op.create_index(op.f('ix_reconciliations_status'), 'reconciliations', ['status'])

    op.create_table(
        'variance_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reconciliation_id', sa.Integer(), nullable=False),
        sa.Column('variance_type', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('investigation_notes', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('recorded_by', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['reconciliation_id'], ['reconciliations.id'],
                                name=op.f('fk_variance_records_reconciliation_id_reconciliations')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_variance_records')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_variance_records_reconciliation_id'), 'variance_records', ['reconciliation_id'])

    op.create_table(
        'stock_reconciliations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('system_quantity', sa.Integer(), nullable=False),
        sa.Column('physical_count', sa.Integer(), nullable=False),
        sa.Column('variance', sa.Integer(), nullable=False),
        sa.Column('reconciliation_date', sa.Date(), nullable=False),
        sa.Column('reconciled_by', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('adjustment_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name=op.f('fk_stock_reconciliations_shop_id_shops')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_stock_reconciliations_product_id_products')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'],
                                name=op.f('fk_stock_reconciliations_branch_id_branches')),
        sa.ForeignKeyConstraint(['adjustment_id'], ['stock_adjustments.id'],
                                name=op.f('fk_stock_reconciliations_adjustment_id_stock_adjustments')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_reconciliations')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_stock_reconciliations_shop_id'), 'stock_reconciliations', ['shop_id'])
    op.create_index(op.f('ix_stock_reconciliations_product_id'), 'stock_reconciliations', ['product_id'])
    op.create_index('ix_stock_recon_shop_date', 'stock_reconciliations', ['shop_id', 'reconciliation_date'])

    # ============================================================================
    # Audit trail (default sink)
    # ============================================================================
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=64), nullable=False),
        sa.Column('resource_id', sa.String(length=64), nullable=True),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_audit_events')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_audit_events_shop_id'), 'audit_events', ['shop_id'])
    op.create_index(op.f('ix_audit_events_action'), 'audit_events', ['action'])
    op.create_index(op.f('ix_audit_events_created_at'), 'audit_events', ['created_at'])
    op.create_index('ix_audit_events_shop_resource', 'audit_events', ['shop_id', 'resource', 'resource_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('audit_events')
    op.drop_table('stock_reconciliations')
    op.drop_table('variance_records')
    op.drop_table('reconciliations')
    op.drop_table('stock_sync_jobs')
    op.drop_table('order_payments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('document_sequences')
    op.drop_table('transfer_items')
    op.drop_table('stock_transfers')
    op.drop_table('stock_adjustments')
    op.drop_table('branch_stock')
    op.drop_table('products')
    op.drop_table('branches')
    op.drop_table('shops')
