"""B2B procurement schema

Revision ID: 20261019_b2b
Revises:
Create Date: 2026-10-19

This migration adds:
1. Organizations and buyers (authorized purchasers)
2. Categories and products (catalog reference)
3. Wholesale price tiers and volume discounts
4. Credit terms and the credit ledger
5. Purchase orders and lines
6. Document sequences (daily purchase order numbering)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_b2b'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, with_updated: bool = True):
    cols = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]
    if with_updated:
        cols.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)
        )
    return cols


def upgrade():
    # ==========================================================================
    # 1. ORGANIZATIONS / BUYERS
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('tax_number', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('organizations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_organizations_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_organizations_is_active'), ['is_active'], unique=False)

    op.create_table('buyers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('employee_id', sa.String(length=64), nullable=True),
        sa.Column('department', sa.String(length=128), nullable=True),
        sa.Column('job_title', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'email', name='uq_buyers_org_email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('buyers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_buyers_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_buyers_status'), ['status'], unique=False)
        batch_op.create_index('ix_buyers_org_status', ['org_id', 'status'], unique=False)

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_categories_parent_id'), ['parent_id'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_category_id'), ['category_id'], unique=False)
        batch_op.create_index('ix_products_category_active', ['category_id', 'is_active'], unique=False)

    # ==========================================================================
    # 3. PRICING RULES
    # ==========================================================================
    op.create_table('wholesale_prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('min_quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_quantity', sa.Integer(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('min_quantity >= 0', name='ck_wholesale_prices_min_qty'),
        sa.CheckConstraint('max_quantity IS NULL OR max_quantity >= min_quantity', name='ck_wholesale_prices_qty_range'),
        sa.CheckConstraint('price_cents >= 0', name='ck_wholesale_prices_price'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('wholesale_prices', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_wholesale_prices_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wholesale_prices_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wholesale_prices_is_active'), ['is_active'], unique=False)
        batch_op.create_index(batch_op.f('ix_wholesale_prices_is_deleted'), ['is_deleted'], unique=False)
        batch_op.create_index('ix_wholesale_prices_product_org', ['product_id', 'org_id'], unique=False)

    op.create_table('volume_discounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('scope_type', sa.String(length=16), nullable=False),
        sa.Column('scope_id', sa.Integer(), nullable=True),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('min_quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_quantity', sa.Integer(), nullable=True),
        sa.Column('discount_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fixed_discount_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('min_quantity >= 1', name='ck_volume_discounts_min_qty'),
        sa.CheckConstraint('max_quantity IS NULL OR max_quantity >= min_quantity', name='ck_volume_discounts_qty_range'),
        sa.CheckConstraint('discount_bps >= 0 AND discount_bps <= 10000', name='ck_volume_discounts_bps_range'),
        sa.CheckConstraint(
            "(scope_type = 'GENERAL' AND scope_id IS NULL) OR "
            "(scope_type IN ('PRODUCT', 'CATEGORY') AND scope_id IS NOT NULL)",
            name='ck_volume_discounts_scope',
        ),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('volume_discounts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_volume_discounts_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_volume_discounts_is_active'), ['is_active'], unique=False)
        batch_op.create_index(batch_op.f('ix_volume_discounts_is_deleted'), ['is_deleted'], unique=False)
        batch_op.create_index('ix_volume_discounts_scope', ['scope_type', 'scope_id'], unique=False)

    # ==========================================================================
    # 4. CREDIT
    # ==========================================================================
    op.create_table('credit_terms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('payment_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('credit_limit_cents', sa.Integer(), nullable=True),
        sa.Column('used_credit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('terms', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('used_credit_cents >= 0', name='ck_credit_terms_used_non_negative'),
        sa.CheckConstraint(
            'credit_limit_cents IS NULL OR used_credit_cents <= credit_limit_cents',
            name='ck_credit_terms_used_within_limit',
        ),
        sa.CheckConstraint('payment_days >= 0', name='ck_credit_terms_payment_days'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('credit_terms', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_credit_terms_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credit_terms_is_active'), ['is_active'], unique=False)

    # ==========================================================================
    # 5. PURCHASE ORDERS
    # ==========================================================================
    op.create_table('purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('credit_term_id', sa.Integer(), nullable=True),
        sa.Column('po_number', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shipping_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('expected_delivery_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('subtotal_cents >= 0', name='ck_purchase_orders_subtotal'),
        sa.CheckConstraint('total_cents >= 0', name='ck_purchase_orders_total'),
        sa.ForeignKeyConstraint(['buyer_id'], ['buyers.id'], ),
        sa.ForeignKeyConstraint(['credit_term_id'], ['credit_terms.id'], ),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('po_number', name='uq_purchase_orders_po_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchase_orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_purchase_orders_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchase_orders_buyer_id'), ['buyer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchase_orders_credit_term_id'), ['credit_term_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchase_orders_status'), ['status'], unique=False)
        batch_op.create_index('ix_purchase_orders_org_status_created', ['org_id', 'status', 'created_at'], unique=False)

    op.create_table('purchase_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('base_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fixed_discount_cents', sa.Integer(), nullable=True),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=500), nullable=True),
        *_timestamps(with_updated=False),
        sa.CheckConstraint('quantity > 0', name='ck_po_lines_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_order_id', 'line_number', name='uq_po_lines_order_line_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchase_order_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_purchase_order_lines_purchase_order_id'), ['purchase_order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchase_order_lines_product_id'), ['product_id'], unique=False)

    op.create_table('credit_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('credit_term_id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=True),
        sa.Column('entry_type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('used_after_cents', sa.Integer(), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['credit_term_id'], ['credit_terms.id'], ),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('credit_ledger_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_credit_ledger_entries_credit_term_id'), ['credit_term_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credit_ledger_entries_purchase_order_id'), ['purchase_order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credit_ledger_entries_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_credit_ledger_term_occurred', ['credit_term_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 6. DOCUMENT SEQUENCES
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('period_key', sa.String(length=16), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'period_key', name='uq_doc_sequences_type_period'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('document_sequences', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_document_sequences_document_type'), ['document_type'], unique=False)


def downgrade():
    op.drop_table('document_sequences')
    op.drop_table('credit_ledger_entries')
    op.drop_table('purchase_order_lines')
    op.drop_table('purchase_orders')
    op.drop_table('credit_terms')
    op.drop_table('volume_discounts')
    op.drop_table('wholesale_prices')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('buyers')
    op.drop_table('organizations')
