"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [sa.Column(n, sa.DateTime(timezone=True), server_default=sa.func.now()) for n in names]


def upgrade():
    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('description', sa.String(length=255)),
        sa.Column('permissions', sa.JSON()),
        sa.Column('is_system', sa.Boolean(), server_default=sa.text('0')),
        sa.Column('is_admin_role', sa.Boolean(), server_default=sa.text('0')),
        *_timestamps('created_at', 'updated_at'),
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        sa.Column('is_superuser', sa.Boolean(), server_default=sa.text('0')),
        sa.Column('last_login', sa.DateTime(timezone=True)),
        *_timestamps('updated_at'),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assigned_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL')),
        *_timestamps('assigned_at'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    op.create_table('activity_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer()),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64)),
        sa.Column('entity_id', sa.String(length=64)),
        sa.Column('description', sa.String(length=255)),
        sa.Column('meta', sa.JSON()),
        *_timestamps('created_at'),
    )
    for col in ('user_id', 'action', 'entity_type', 'created_at'):
        op.create_index(f'ix_activity_logs_{col}', 'activity_logs', [col])

    op.create_table('store_settings',
        sa.Column('key', sa.String(length=64), primary_key=True),
        sa.Column('value', sa.JSON()),
        sa.Column('updated_by', sa.Integer()),
        *_timestamps('updated_at'),
    )

    op.create_table('number_sequences',
        sa.Column('name', sa.String(length=32), primary_key=True),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('next_value', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('padding', sa.Integer(), nullable=False, server_default='5'),
    )

    op.create_table('categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=120), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL')),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        *_timestamps('updated_at'),
    )
    op.create_index('ix_categories_slug', 'categories', ['slug'])
    op.create_index('ix_categories_parent_id', 'categories', ['parent_id'])

    op.create_table('products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(length=64), nullable=False, unique=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL')),
        sa.Column('base_price_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_price_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gst_rate_bp', sa.Integer(), nullable=False, server_default='300'),
        sa.Column('hsn_code', sa.String(length=16)),
        sa.Column('barcode', sa.String(length=64)),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('updated_at'),
    )
    for col in ('sku', 'name', 'category_id', 'barcode', 'is_active'):
        op.create_index(f'ix_products_{col}', 'products', [col])

    op.create_table('product_variants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('variant_name', sa.String(length=120), nullable=False),
        sa.Column('sku_suffix', sa.String(length=64)),
        sa.Column('price_adjustment_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('size', sa.String(length=32)),
        sa.Column('color', sa.String(length=32)),
        sa.Column('material', sa.String(length=64)),
        sa.Column('shopify_inventory_id', sa.String(length=64)),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        *_timestamps('updated_at'),
        sa.UniqueConstraint('product_id', 'variant_name', name='uq_variant_name'),
    )
    for col in ('product_id', 'sku_suffix', 'shopify_inventory_id'):
        op.create_index(f'ix_product_variants_{col}', 'product_variants', [col])

    op.create_table('customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('phone', sa.String(length=20), unique=True),
        sa.Column('email', sa.String(length=150)),
        sa.Column('address', sa.Text()),
        sa.Column('state_code', sa.String(length=2)),
        sa.Column('gstin', sa.String(length=15)),
        sa.Column('total_spent_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text()),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        *_timestamps('updated_at'),
    )
    for col in ('name', 'phone', 'email', 'is_active'):
        op.create_index(f'ix_customers_{col}', 'customers', [col])

    op.create_table('customer_interactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='CASCADE')),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='note'),
        sa.Column('channel', sa.String(length=32)),
        sa.Column('contact', sa.String(length=64)),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('created_at'),
    )
    op.create_index('ix_customer_interactions_customer_id', 'customer_interactions', ['customer_id'])
    op.create_index('ix_customer_interactions_contact', 'customer_interactions', ['contact'])

    op.create_table('loyalty_accounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('current_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_points_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_value_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        *_timestamps('updated_at'),
    )

    op.create_table('loyalty_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('loyalty_accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(length=32)),
        sa.Column('reference_id', sa.String(length=64)),
        sa.Column('description', sa.String(length=255)),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('created_at'),
    )
    op.create_index('ix_loyalty_transactions_account_id', 'loyalty_transactions', ['account_id'])

    op.create_table('vendors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=150), nullable=False, unique=True),
        sa.Column('contact_person', sa.String(length=150)),
        sa.Column('email', sa.String(length=150)),
        sa.Column('phone', sa.String(length=20)),
        sa.Column('gstin', sa.String(length=15)),
        sa.Column('address', sa.Text()),
        sa.Column('payment_terms', sa.String(length=64)),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='ACTIVE'),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('updated_at'),
    )
    for col in ('name', 'email', 'status'):
        op.create_index(f'ix_vendors_{col}', 'vendors', [col])

    op.create_table('vendor_products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('vendor_id', sa.Integer(), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_sku', sa.String(length=64)),
        sa.Column('cost_price_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lead_time_days', sa.Integer()),
        sa.Column('is_preferred', sa.Boolean(), server_default=sa.text('0')),
        *_timestamps('updated_at'),
        sa.UniqueConstraint('vendor_id', 'variant_id', name='uq_vendor_variant'),
    )
    op.create_index('ix_vendor_products_vendor_id', 'vendor_products', ['vendor_id'])
    op.create_index('ix_vendor_products_variant_id', 'vendor_products', ['variant_id'])

    op.create_table('purchase_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('po_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('vendor_id', sa.Integer(), sa.ForeignKey('vendors.id'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='DRAFT'),
        sa.Column('expected_date', sa.Date()),
        sa.Column('subtotal_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        *_timestamps('updated_at'),
    )
    op.create_index('ix_purchase_orders_vendor_id', 'purchase_orders', ['vendor_id'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])

    op.create_table('purchase_order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('purchase_order_id', sa.Integer(), sa.ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('received_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_cost_paise', sa.Integer(), nullable=False),
        sa.Column('gst_rate_bp', sa.Integer(), nullable=False, server_default='300'),
        sa.Column('line_total_paise', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_purchase_order_items_purchase_order_id', 'purchase_order_items', ['purchase_order_id'])

    op.create_table('sales',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sale_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('channel', sa.String(length=16), nullable=False, server_default='pos'),
        sa.Column('channel_order_id', sa.String(length=64)),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL')),
        sa.Column('customer_name', sa.String(length=150)),
        sa.Column('customer_phone', sa.String(length=20)),
        sa.Column('shipping_address', sa.Text()),
        sa.Column('subtotal_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('loyalty_points_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('loyalty_discount_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('created_at', 'updated_at'),
        sa.UniqueConstraint('channel', 'channel_order_id', name='uq_sale_channel_order'),
    )
    for col in ('channel', 'customer_id', 'status', 'created_at'):
        op.create_index(f'ix_sales_{col}', 'sales', [col])

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id', ondelete='SET NULL')),
        sa.Column('description', sa.String(length=200)),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_paise', sa.Integer(), nullable=False),
        sa.Column('discount_bp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gst_rate_bp', sa.Integer(), nullable=False, server_default='300'),
        sa.Column('line_total_paise', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])

    op.create_table('bank_accounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_name', sa.String(length=120), nullable=False),
        sa.Column('account_number', sa.String(length=34)),
        sa.Column('bank_name', sa.String(length=120)),
        sa.Column('ifsc_code', sa.String(length=11)),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('opening_balance_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_balance_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('allow_overdraft', sa.Boolean(), server_default=sa.text('0')),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        *_timestamps('updated_at'),
    )
    op.create_index('ix_bank_accounts_is_active', 'bank_accounts', ['is_active'])

    op.create_table('bank_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('bank_accounts.id'), nullable=False),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount_paise', sa.Integer(), nullable=False),
        sa.Column('balance_after_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.Text()),
        sa.Column('reference_number', sa.String(length=64)),
        sa.Column('related_entity_type', sa.String(length=32)),
        sa.Column('related_entity_id', sa.String(length=64)),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('created_at'),
    )
    op.create_index('ix_bank_transactions_account_id', 'bank_transactions', ['account_id'])
    op.create_index('ix_bank_transactions_transaction_date', 'bank_transactions', ['transaction_date'])

    op.create_table('expenses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('amount_paise', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('bank_account_id', sa.Integer(), sa.ForeignKey('bank_accounts.id', ondelete='SET NULL')),
        sa.Column('bank_transaction_id', sa.Integer(), sa.ForeignKey('bank_transactions.id', ondelete='SET NULL')),
        sa.Column('vendor_id', sa.Integer(), sa.ForeignKey('vendors.id', ondelete='SET NULL')),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('updated_at'),
    )
    op.create_index('ix_expenses_expense_date', 'expenses', ['expense_date'])
    op.create_index('ix_expenses_category', 'expenses', ['category'])

    op.create_table('invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id', ondelete='SET NULL')),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL')),
        sa.Column('buyer_name', sa.String(length=150), nullable=False),
        sa.Column('buyer_address', sa.Text()),
        sa.Column('buyer_gstin', sa.String(length=15)),
        sa.Column('buyer_state_code', sa.String(length=2)),
        sa.Column('seller_state_code', sa.String(length=2), nullable=False),
        sa.Column('is_inter_state', sa.Boolean(), server_default=sa.text('0')),
        *[sa.Column(c, sa.Integer(), nullable=False, server_default='0') for c in (
            'taxable_paise', 'discount_paise', 'cgst_paise', 'sgst_paise', 'igst_paise',
            'total_tax_paise', 'grand_total_paise', 'paid_paise')],
        sa.Column('amount_in_words', sa.String(length=255)),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ISSUED'),
        sa.Column('print_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('updated_at'),
    )
    for col in ('sale_id', 'customer_id', 'status'):
        op.create_index(f'ix_invoices_{col}', 'invoices', [col])

    op.create_table('invoice_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sr_no', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id', ondelete='SET NULL')),
        sa.Column('description', sa.String(length=200), nullable=False),
        sa.Column('hsn_code', sa.String(length=16)),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_paise', sa.Integer(), nullable=False),
        sa.Column('discount_bp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gst_rate_bp', sa.Integer(), nullable=False, server_default='300'),
        *[sa.Column(c, sa.Integer(), nullable=False, server_default='0') for c in (
            'taxable_paise', 'cgst_paise', 'sgst_paise', 'igst_paise', 'total_paise')],
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])

    op.create_table('invoice_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount_paise', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('reference', sa.String(length=64)),
        sa.Column('bank_account_id', sa.Integer(), sa.ForeignKey('bank_accounts.id', ondelete='SET NULL')),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('created_at'),
    )
    op.create_index('ix_invoice_payments_invoice_id', 'invoice_payments', ['invoice_id'])

    op.create_table('credit_notes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('credit_note_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id'), nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL')),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('refund_method', sa.String(length=16)),
        sa.Column('restock', sa.Boolean(), server_default=sa.text('1')),
        sa.Column('taxable_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('updated_at'),
    )
    for col in ('invoice_id', 'customer_id', 'status'):
        op.create_index(f'ix_credit_notes_{col}', 'credit_notes', [col])

    op.create_table('credit_note_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('credit_note_id', sa.Integer(), sa.ForeignKey('credit_notes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('invoice_item_id', sa.Integer(), sa.ForeignKey('invoice_items.id'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id', ondelete='SET NULL')),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_paise', sa.Integer(), nullable=False),
        sa.Column('gst_rate_bp', sa.Integer(), nullable=False, server_default='300'),
        sa.Column('taxable_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_paise', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_credit_note_items_credit_note_id', 'credit_note_items', ['credit_note_id'])


def downgrade():
    for table in (
        'credit_note_items', 'credit_notes', 'invoice_payments', 'invoice_items', 'invoices',
        'expenses', 'bank_transactions', 'bank_accounts', 'sale_items', 'sales',
        'purchase_order_items', 'purchase_orders', 'vendor_products', 'vendors',
        'loyalty_transactions', 'loyalty_accounts', 'customer_interactions', 'customers',
        'product_variants', 'products', 'categories', 'number_sequences', 'store_settings',
        'activity_logs', 'user_roles', 'users', 'roles',
    ):
        op.drop_table(table)
