"""Initial storefront schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration creates:
1. Accounts: users, session_tokens, carts, cart_items
2. Catalog collaborator tables: products, product_variants, coupons
3. Orders: orders, order_lines, order_status_history
4. Guest checkout: guest_orders, guest_order_lines
5. Inventory ledger: inventory, inventory_movements
6. Pricing: silver_prices
7. Loyalty: loyalty_programs, loyalty_tiers, user_loyalty, points_transactions
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. ACCOUNTS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='USER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('ship_first_name', sa.String(length=128), nullable=True),
        sa.Column('ship_last_name', sa.String(length=128), nullable=True),
        sa.Column('ship_phone_number', sa.String(length=32), nullable=True),
        sa.Column('ship_street', sa.String(length=255), nullable=True),
        sa.Column('ship_city', sa.String(length=128), nullable=True),
        sa.Column('ship_state', sa.String(length=128), nullable=True),
        sa.Column('ship_zip', sa.String(length=16), nullable=True),
        sa.Column('ship_country', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_session_tokens_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_is_revoked'), ['is_revoked'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('sale_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('static_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('gst_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='18'),
        sa.Column('is_dynamic_pricing', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('silver_weight', sa.Numeric(precision=10, scale=3), nullable=True),
        sa.Column('labor_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )

    op.create_table('product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_variants', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_variants_product_id'), ['product_id'], unique=False)

    op.create_table('coupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('min_price', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_coupons_code'),
        sqlite_autoincrement=True
    )

    op.create_table('carts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_carts_user'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('carts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_carts_user_id'), ['user_id'], unique=False)

    op.create_table('cart_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cart_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['cart_id'], ['carts.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cart_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cart_items_cart_id'), ['cart_id'], unique=False)

    # ==========================================================================
    # 3. ORDERS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('payment_mode', sa.String(length=16), nullable=False, server_default='ONLINE'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('order_status', sa.String(length=32), nullable=False, server_default='PLACED'),
        sa.Column('ship_first_name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('ship_last_name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('ship_email', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('ship_phone_number', sa.String(length=32), nullable=False),
        sa.Column('ship_street', sa.String(length=255), nullable=False),
        sa.Column('ship_city', sa.String(length=128), nullable=False),
        sa.Column('ship_state', sa.String(length=128), nullable=False),
        sa.Column('ship_zip', sa.String(length=16), nullable=False),
        sa.Column('ship_country', sa.String(length=64), nullable=False, server_default='India'),
        sa.Column('coupon_id', sa.Integer(), nullable=True),
        sa.Column('coupon_discount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('order_price', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('total_amount_paid', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('rzp_order_id', sa.String(length=64), nullable=True),
        sa.Column('rzp_payment_id', sa.String(length=64), nullable=True),
        sa.Column('cc_order_id', sa.String(length=64), nullable=True),
        sa.Column('cc_bank_ref_no', sa.String(length=64), nullable=True),
        sa.Column('stripe_payment_id', sa.String(length=64), nullable=True),
        sa.Column('inventory_committed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_buyer_id'), ['buyer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_rzp_order_id'), ['rzp_order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_stripe_payment_id'), ['stripe_payment_id'], unique=False)
        batch_op.create_index('ix_orders_buyer_created', ['buyer_id', 'created_at'], unique=False)
        batch_op.create_index('ix_orders_status', ['order_status'], unique=False)
        batch_op.create_index('ix_orders_payment_status', ['payment_status'], unique=False)

    op.create_table('order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_lines_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_lines_product_id'), ['product_id'], unique=False)

    op.create_table('order_status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_status_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_status_history_order_id'), ['order_id'], unique=False)

    # ==========================================================================
    # 4. GUEST CHECKOUT
    # ==========================================================================
    op.create_table('guest_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('guest_first_name', sa.String(length=128), nullable=False),
        sa.Column('guest_last_name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('guest_email', sa.String(length=255), nullable=False),
        sa.Column('guest_phone_number', sa.String(length=32), nullable=False),
        sa.Column('ship_address', sa.String(length=255), nullable=False),
        sa.Column('ship_city', sa.String(length=128), nullable=False),
        sa.Column('ship_state', sa.String(length=128), nullable=False),
        sa.Column('ship_pincode', sa.String(length=16), nullable=False),
        sa.Column('ship_country', sa.String(length=64), nullable=False, server_default='India'),
        sa.Column('bill_address', sa.String(length=255), nullable=True),
        sa.Column('bill_city', sa.String(length=128), nullable=True),
        sa.Column('bill_state', sa.String(length=128), nullable=True),
        sa.Column('bill_pincode', sa.String(length=16), nullable=True),
        sa.Column('bill_country', sa.String(length=64), nullable=True),
        sa.Column('bill_same_as_shipping', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('gst_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('shipping_charges', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('final_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='ONLINE'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('payment_gateway', sa.String(length=32), nullable=True),
        sa.Column('transaction_id', sa.String(length=64), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('order_status', sa.String(length=32), nullable=False, server_default='PLACED'),
        sa.Column('coupon_id', sa.Integer(), nullable=True),
        sa.Column('conversion_token', sa.String(length=64), nullable=True),
        sa.Column('conversion_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('converted_to_user_id', sa.Integer(), nullable=True),
        sa.Column('converted_order_id', sa.Integer(), nullable=True),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ),
        sa.ForeignKeyConstraint(['converted_to_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['converted_order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('conversion_token', name='uq_guest_orders_conversion_token'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('guest_orders', schema=None) as batch_op:
        batch_op.create_index('ix_guest_orders_email', ['guest_email'], unique=False)
        batch_op.create_index('ix_guest_orders_payment_status', ['payment_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_guest_orders_converted_to_user_id'), ['converted_to_user_id'], unique=False)

    op.create_table('guest_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('guest_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('silver_cost', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('labor_cost', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('unit_gst_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('unit_final_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['guest_order_id'], ['guest_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('guest_order_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_guest_order_lines_guest_order_id'), ['guest_order_id'], unique=False)

    # ==========================================================================
    # 5. INVENTORY LEDGER
    # ==========================================================================
    op.create_table('inventory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_point', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('max_stock', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('is_low_stock', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_out_of_stock', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_over_stock', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('warehouse', sa.String(length=128), nullable=False, server_default='Main Warehouse'),
        sa.Column('section', sa.String(length=32), nullable=False, server_default='A1'),
        sa.Column('shelf', sa.String(length=32), nullable=False, server_default='1'),
        sa.Column('cost_price', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('last_restocked', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_sold', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_purchased', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'variant_id', name='uq_inventory_product_variant'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_product_id'), ['product_id'], unique=False)
        batch_op.create_index('ix_inventory_alerts', ['is_low_stock', 'is_out_of_stock'], unique=False)

    op.create_table('inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('reserved_after', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventory.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_movements_inventory_id'), ['inventory_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_movements_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_movements_order_id'), ['order_id'], unique=False)
        batch_op.create_index('ix_inventory_movements_inventory_occurred', ['inventory_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 6. PRICING
    # ==========================================================================
    op.create_table('silver_prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('price_per_gram', sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='INR'),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='api'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('silver_prices', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_silver_prices_last_updated'), ['last_updated'], unique=False)
        batch_op.create_index('ix_silver_prices_active_updated', ['is_active', 'last_updated'], unique=False)

    # ==========================================================================
    # 7. LOYALTY
    # ==========================================================================
    op.create_table('loyalty_programs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('points_per_rupee', sa.Numeric(precision=8, scale=4), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table('loyalty_tiers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('min_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('benefits', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['program_id'], ['loyalty_programs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('program_id', 'name', name='uq_loyalty_tiers_program_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('loyalty_tiers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loyalty_tiers_program_id'), ['program_id'], unique=False)

    op.create_table('user_loyalty',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=True),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_spend', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_order_value', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('current_tier', sa.String(length=64), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['program_id'], ['loyalty_programs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_user_loyalty_user'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('user_loyalty', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_user_loyalty_user_id'), ['user_id'], unique=False)

    op.create_table('points_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('guest_order_id', sa.Integer(), nullable=True),
        sa.Column('order_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['guest_order_id'], ['guest_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'type', name='uq_points_transactions_order_type'),
        sa.UniqueConstraint('guest_order_id', 'type', name='uq_points_transactions_guest_order_type'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('points_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_points_transactions_user_id'), ['user_id'], unique=False)


def downgrade():
    for table in (
        'points_transactions',
        'user_loyalty',
        'loyalty_tiers',
        'loyalty_programs',
        'silver_prices',
        'inventory_movements',
        'inventory',
        'guest_order_lines',
        'guest_orders',
        'order_status_history',
        'order_lines',
        'orders',
        'cart_items',
        'carts',
        'coupons',
        'product_variants',
        'products',
        'session_tokens',
        'users',
    ):
        op.drop_table(table)
