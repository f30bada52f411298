"""product attributes, delivery challans, register shifts and discounts

Revision ID: 0002_attributes_challans_register_discounts
Revises: 0001_initial_schema
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0002_attributes_challans_register_discounts'
down_revision = '0001_initial_schema'
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [sa.Column(n, sa.DateTime(timezone=True), server_default=sa.func.now()) for n in names]


def _paise(*names):
    return [sa.Column(n, sa.Integer(), nullable=False, server_default='0') for n in names]


def upgrade():
    op.create_table('product_attributes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=120), nullable=False, unique=True),
        sa.Column('attribute_type', sa.String(length=16), nullable=False, server_default='text'),
        sa.Column('options', sa.JSON()),
        sa.Column('default_value', sa.String(length=255)),
        sa.Column('is_required', sa.Boolean(), server_default=sa.text('0')),
        sa.Column('is_filterable', sa.Boolean(), server_default=sa.text('0')),
        sa.Column('is_visible_on_product', sa.Boolean(), server_default=sa.text('1')),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        *_timestamps('updated_at'),
    )
    op.create_index('ix_product_attributes_slug', 'product_attributes', ['slug'])

    op.create_table('product_attribute_values',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('attribute_id', sa.Integer(), sa.ForeignKey('product_attributes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        *_timestamps('updated_at'),
        sa.UniqueConstraint('product_id', 'attribute_id', name='uq_product_attribute'),
    )
    op.create_index('ix_product_attribute_values_product_id', 'product_attribute_values', ['product_id'])

    op.create_table('delivery_challans',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('challan_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('challan_date', sa.Date(), nullable=False),
        sa.Column('challan_type', sa.String(length=24), nullable=False, server_default='other'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('consignor_name', sa.String(length=150), nullable=False),
        sa.Column('consignor_gstin', sa.String(length=15)),
        sa.Column('consignor_address', sa.Text()),
        sa.Column('consignor_state_code', sa.String(length=2)),
        sa.Column('consignee_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL')),
        sa.Column('consignee_name', sa.String(length=150), nullable=False),
        sa.Column('consignee_gstin', sa.String(length=15)),
        sa.Column('consignee_address', sa.Text()),
        sa.Column('consignee_state_code', sa.String(length=2)),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id', ondelete='SET NULL')),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='SET NULL')),
        sa.Column('vehicle_number', sa.String(length=20)),
        sa.Column('transporter_name', sa.String(length=150)),
        sa.Column('driver_name', sa.String(length=100)),
        sa.Column('driver_phone', sa.String(length=20)),
        sa.Column('transport_mode', sa.String(length=8), nullable=False, server_default='road'),
        sa.Column('eway_bill_number', sa.String(length=20)),
        sa.Column('eway_bill_date', sa.Date()),
        sa.Column('total_quantity', sa.Integer(), nullable=False, server_default='0'),
        *_paise('taxable_paise', 'cgst_paise', 'sgst_paise', 'igst_paise', 'total_paise'),
        sa.Column('reason', sa.String(length=255)),
        sa.Column('notes', sa.Text()),
        sa.Column('internal_notes', sa.Text()),
        sa.Column('expected_delivery_date', sa.Date()),
        sa.Column('delivered_at', sa.DateTime(timezone=True)),
        sa.Column('created_by', sa.Integer()),
        *_timestamps('updated_at'),
    )
    for col in ('challan_type', 'status', 'consignee_id', 'consignee_name', 'sale_id'):
        op.create_index(f'ix_delivery_challans_{col}', 'delivery_challans', [col])

    op.create_table('delivery_challan_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('challan_id', sa.Integer(), sa.ForeignKey('delivery_challans.id', ondelete='CASCADE'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id', ondelete='SET NULL')),
        sa.Column('sr_no', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=False),
        sa.Column('hsn_code', sa.String(length=16), nullable=False, server_default='7113'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit', sa.String(length=8), nullable=False, server_default='PCS'),
        sa.Column('unit_price_paise', sa.Integer(), nullable=False),
        sa.Column('gst_rate_bp', sa.Integer(), nullable=False, server_default='300'),
        *_paise('taxable_paise', 'tax_paise', 'line_total_paise'),
        sa.Column('remarks', sa.String(length=255)),
    )
    op.create_index('ix_delivery_challan_items_challan_id', 'delivery_challan_items', ['challan_id'])

    op.create_table('register_shifts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('terminal_id', sa.String(length=32)),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        *_paise('opening_balance_paise', 'cash_added_paise', 'cash_removed_paise', 'cash_sales_paise',
                'card_sales_paise', 'upi_sales_paise', 'cash_refunds_paise'),
        sa.Column('expected_balance_paise', sa.Integer()),
        sa.Column('closing_balance_paise', sa.Integer()),
        sa.Column('variance_paise', sa.Integer()),
        sa.Column('variance_notes', sa.Text()),
        sa.Column('notes', sa.Text()),
        *_timestamps('opened_at'),
        sa.Column('closed_at', sa.DateTime(timezone=True)),
        *_timestamps('updated_at'),
    )
    for col in ('user_id', 'status', 'opened_at'):
        op.create_index(f'ix_register_shifts_{col}', 'register_shifts', [col])

    op.create_table('drawer_operations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shift_id', sa.Integer(), sa.ForeignKey('register_shifts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('operation_type', sa.String(length=8), nullable=False),
        sa.Column('amount_paise', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255)),
        sa.Column('performed_by', sa.Integer()),
        *_timestamps('performed_at'),
    )
    op.create_index('ix_drawer_operations_shift_id', 'drawer_operations', ['shift_id'])

    with op.batch_alter_table('sales') as batch:
        batch.add_column(sa.Column('register_shift_id', sa.Integer()))
        batch.create_foreign_key('fk_sales_register_shift_id', 'register_shifts', ['register_shift_id'], ['id'],
                                 ondelete='SET NULL')
        batch.create_index('ix_sales_register_shift_id', ['register_shift_id'])

    op.create_table('discounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('discount_type', sa.String(length=16), nullable=False, server_default='percentage'),
        sa.Column('value', sa.Integer(), nullable=False),
        sa.Column('max_discount_paise', sa.Integer()),
        sa.Column('min_purchase_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_items', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('applies_to', sa.String(length=16), nullable=False, server_default='all'),
        sa.Column('applies_to_ids', sa.JSON()),
        sa.Column('usage_limit', sa.Integer()),
        sa.Column('per_customer_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('start_date', sa.Date()),
        sa.Column('end_date', sa.Date()),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        *_timestamps('created_at', 'updated_at'),
    )
    op.create_index('ix_discounts_is_active', 'discounts', ['is_active'])

    op.create_table('discount_usage',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('discount_id', sa.Integer(), sa.ForeignKey('discounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL')),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id', ondelete='SET NULL')),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='SET NULL')),
        sa.Column('discount_paise', sa.Integer(), nullable=False),
        sa.Column('order_value_paise', sa.Integer(), nullable=False),
        *_timestamps('created_at'),
    )
    op.create_index('ix_discount_usage_discount_id', 'discount_usage', ['discount_id'])
    op.create_index('ix_discount_usage_customer_id', 'discount_usage', ['customer_id'])


def downgrade():
    op.drop_table('discount_usage')
    op.drop_table('discounts')
    with op.batch_alter_table('sales') as batch:
        batch.drop_index('ix_sales_register_shift_id')
        batch.drop_constraint('fk_sales_register_shift_id', type_='foreignkey')
        batch.drop_column('register_shift_id')
    for table in ('drawer_operations', 'register_shifts', 'delivery_challan_items', 'delivery_challans',
                  'product_attribute_values', 'product_attributes'):
        op.drop_table(table)
