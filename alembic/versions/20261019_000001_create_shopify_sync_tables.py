"""Create Shopify sync tables (credentials, products, variants, orders, line_items)

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 09:00:00.000000

WHAT:
    Creates the ingestion store:
    - shopify_credentials: One per tenant (encrypted access token)
    - products / variants: Catalog with unit landing cost per variant
    - orders / line_items: Order facts with derived net payment and landing cost

WHY:
    Every synced row is keyed by Shopify GID with a unique constraint so
    repeated syncs update in place instead of duplicating.

REFERENCES:
    - shopsync/models.py
    - Shopify GraphQL Admin API: https://shopify.dev/docs/api/admin-graphql
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20261019_000001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =========================================================================
    # STEP 1: shopify_credentials
    # =========================================================================
    op.create_table(
        'shopify_credentials',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', sa.String(), nullable=False, unique=True),
        sa.Column('store_domain', sa.String(), nullable=False),
        sa.Column('access_token_enc', sa.Text(), nullable=False),
        sa.Column('api_version', sa.String(), nullable=False, server_default='2024-10'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    # =========================================================================
    # STEP 2: products
    # =========================================================================
    op.create_table(
        'products',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shopify_id', sa.String(), nullable=False),
        sa.Column('client_id', sa.String(), nullable=False),
        sa.Column('credential_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('shopify_credentials.id'), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('handle', sa.String(), nullable=True),
        sa.Column('vendor', sa.String(), nullable=True),
        sa.Column('product_type', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('tags', sa.Text(), nullable=True),
        sa.Column('shopify_updated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('shopify_id', name='uq_products_shopify_id'),
    )
    op.create_index('ix_products_client_id', 'products', ['client_id'])

    # =========================================================================
    # STEP 3: variants
    # =========================================================================
    # WHAT: Unit landing cost lives here (inventory_cost, nullable = unknown)
    op.create_table(
        'variants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shopify_id', sa.String(), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('barcode', sa.String(), nullable=True),
        sa.Column('price', sa.Numeric(18, 4), nullable=True),
        sa.Column('compare_at_price', sa.Numeric(18, 4), nullable=True),
        sa.Column('inventory_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('inventory_quantity', sa.Integer(), nullable=True),
        sa.Column('inventory_item_id', sa.String(), nullable=True),
        sa.Column('shopify_updated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('shopify_id', name='uq_variants_shopify_id'),
    )
    op.create_index('ix_variants_product_id', 'variants', ['product_id'])

    # =========================================================================
    # STEP 4: orders
    # =========================================================================
    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shopify_id', sa.String(), nullable=False),
        sa.Column('client_id', sa.String(), nullable=False),
        sa.Column('credential_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('shopify_credentials.id'), nullable=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('order_number', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        # Totals
        sa.Column('subtotal', sa.Numeric(18, 4), nullable=True),
        sa.Column('total_price', sa.Numeric(18, 4), nullable=True),
        sa.Column('total_discounts', sa.Numeric(18, 4), nullable=True),
        sa.Column('total_shipping', sa.Numeric(18, 4), nullable=True),
        sa.Column('total_tax', sa.Numeric(18, 4), nullable=True),
        # Derived
        sa.Column('net_payment', sa.Numeric(18, 4), nullable=True),
        sa.Column('landing_cost', sa.Numeric(18, 4), nullable=True),
        # Status
        sa.Column('fulfillment_status', sa.String(), nullable=True),
        sa.Column('financial_status', sa.String(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('shopify_updated_at', sa.DateTime(), nullable=True),
        sa.Column('discount_codes', sa.Text(), nullable=True),
        sa.Column('shipping_lines', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('shopify_id', name='uq_orders_shopify_id'),
    )
    op.create_index('ix_orders_client_id', 'orders', ['client_id'])

    # =========================================================================
    # STEP 5: line_items
    # =========================================================================
    # WHAT: landing_cost is a snapshot of unit cost * quantity at sync time
    op.create_table(
        'line_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shopify_id', sa.String(), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_shopify_id', sa.String(), nullable=True),
        sa.Column('variant_shopify_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price', sa.Numeric(18, 4), nullable=True),
        sa.Column('total_discount', sa.Numeric(18, 4), nullable=True),
        sa.Column('discounted_total', sa.Numeric(18, 4), nullable=True),
        sa.Column('fulfillment_status', sa.String(), nullable=True),
        sa.Column('landing_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('net_payment', sa.Numeric(18, 4), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('shopify_id', name='uq_line_items_shopify_id'),
    )
    op.create_index('ix_line_items_order_id', 'line_items', ['order_id'])


def downgrade() -> None:
    # Drop tables in reverse order (respect foreign keys)
    op.drop_index('ix_line_items_order_id', table_name='line_items')
    op.drop_table('line_items')
    op.drop_index('ix_orders_client_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_variants_product_id', table_name='variants')
    op.drop_table('variants')
    op.drop_index('ix_products_client_id', table_name='products')
    op.drop_table('products')
    op.drop_table('shopify_credentials')
