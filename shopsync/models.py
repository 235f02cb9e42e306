"""SQLAlchemy ORM models for the Shopify ingestion store.

Every synced entity is keyed by Shopify's immutable GID in a unique
``shopify_id`` column so repeated syncs update rows in place. Money columns
are Numeric(18, 4) and hold ``Decimal`` values end to end.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Numeric, Text, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp for bookkeeping columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# SHOPIFY CREDENTIALS
# =============================================================================

class ShopifyCredential(Base):
    """Per-tenant Shopify Admin API credential.

    WHAT: Store domain, encrypted access token and pinned API version
    WHY: One credential per tenant drives every scheduled and on-demand sync;
         the sync core only reads it
    REFERENCES:
        - shopsync/services/credential_store.py (writes)
        - shopsync/services/shopify_client.py::ShopifyClient.from_credential (reads)
    """
    __tablename__ = "shopify_credentials"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Tenant identifier (one credential per tenant)
    client_id = Column(String, nullable=False, unique=True)

    store_domain = Column(String, nullable=False)  # e.g., "mystore.myshopify.com"
    access_token_enc = Column(Text, nullable=False)  # Fernet ciphertext
    api_version = Column(String, nullable=False, default="2024-10")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __str__(self):
        return f"{self.client_id} ({self.store_domain})"


# =============================================================================
# CATALOG
# =============================================================================

class Product(Base):
    """Catalog product.

    WHAT: Product-level attributes; variants hang off it
    WHY: Variants carry the unit cost used for landing cost, products group them
         per tenant
    REFERENCES:
        - https://shopify.dev/docs/api/admin-graphql/2024-10/objects/Product
    """
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("shopify_id", name="uq_products_shopify_id"),
        Index("ix_products_client_id", "client_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    shopify_id = Column(String, nullable=False)  # gid://shopify/Product/xxx

    # Tenant scoping
    client_id = Column(String, nullable=False)
    credential_id = Column(UUID(as_uuid=True), ForeignKey("shopify_credentials.id"), nullable=True)

    title = Column(String, nullable=True)
    handle = Column(String, nullable=True)
    vendor = Column(String, nullable=True)
    product_type = Column(String, nullable=True)
    status = Column(String, nullable=True)  # active, archived, draft
    tags = Column(Text, nullable=True)  # Not fetched; kept for the reporting layer

    shopify_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    variants = relationship("Variant", back_populates="product")

    def __str__(self):
        return f"{self.title} ({self.shopify_id})"


class Variant(Base):
    """Purchasable variant with its unit landing cost.

    WHAT: Price, inventory and cost for one SKU
    WHY: ``inventory_cost`` feeds the CostIndex; null means the cost is unknown
         and is only treated as zero for margin math
    REFERENCES:
        - https://shopify.dev/docs/api/admin-graphql/2024-10/objects/ProductVariant
        - shopsync/services/cost_index.py
    """
    __tablename__ = "variants"
    __table_args__ = (
        UniqueConstraint("shopify_id", name="uq_variants_shopify_id"),
        Index("ix_variants_product_id", "product_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    shopify_id = Column(String, nullable=False)  # gid://shopify/ProductVariant/xxx
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)

    sku = Column(String, nullable=True)
    title = Column(String, nullable=True)
    barcode = Column(String, nullable=True)

    price = Column(Numeric(18, 4), nullable=True)
    compare_at_price = Column(Numeric(18, 4), nullable=True)
    inventory_cost = Column(Numeric(18, 4), nullable=True)  # inventoryItem.unitCost.amount
    inventory_quantity = Column(Integer, nullable=True)
    inventory_item_id = Column(String, nullable=True)

    shopify_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    product = relationship("Product", back_populates="variants")

    def __str__(self):
        return f"{self.sku or self.title} ({self.shopify_id})"


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """Order facts with derived revenue and cost.

    WHAT: Current order totals plus ``net_payment`` and ``landing_cost``
    WHY: Orders are the source of truth for revenue and margin metrics
         net_payment = total_price - total_discounts + total_shipping - total_tax
         landing_cost = sum of stored line item landing costs
    REFERENCES:
        - https://shopify.dev/docs/api/admin-graphql/2024-10/objects/Order
        - shopsync/services/order_sync.py
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("shopify_id", name="uq_orders_shopify_id"),
        Index("ix_orders_client_id", "client_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    shopify_id = Column(String, nullable=False)  # gid://shopify/Order/xxx

    # Tenant scoping
    client_id = Column(String, nullable=False)
    credential_id = Column(UUID(as_uuid=True), ForeignKey("shopify_credentials.id"), nullable=True)

    name = Column(String, nullable=True)  # Display name (e.g., "#1001")
    order_number = Column(Integer, nullable=True)  # Digits of name
    currency = Column(String, nullable=True)

    # Current totals (presentment currency)
    subtotal = Column(Numeric(18, 4), nullable=True)
    total_price = Column(Numeric(18, 4), nullable=True)
    total_discounts = Column(Numeric(18, 4), nullable=True)
    total_shipping = Column(Numeric(18, 4), nullable=True)
    total_tax = Column(Numeric(18, 4), nullable=True)

    # Derived
    net_payment = Column(Numeric(18, 4), nullable=True)
    landing_cost = Column(Numeric(18, 4), nullable=True)

    fulfillment_status = Column(String, nullable=True)  # Never set by sync
    financial_status = Column(String, nullable=True)  # Lower-cased

    processed_at = Column(DateTime, nullable=True)
    shopify_updated_at = Column(DateTime, nullable=True)

    # Display-only JSON blobs
    discount_codes = Column(Text, nullable=True)
    shipping_lines = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    line_items = relationship("LineItem", back_populates="order")

    def __str__(self):
        return f"Order {self.name or self.shopify_id} - {self.total_price}"


class LineItem(Base):
    """Order line with a historical cost snapshot.

    WHAT: Quantity, pricing and ``landing_cost`` for one line of an order
    WHY: Variant cost may change later; the landing cost is computed from the
         cost known when the line item is synced and is not re-derived
    REFERENCES:
        - https://shopify.dev/docs/api/admin-graphql/2024-10/objects/LineItem
    """
    __tablename__ = "line_items"
    __table_args__ = (
        UniqueConstraint("shopify_id", name="uq_line_items_shopify_id"),
        Index("ix_line_items_order_id", "order_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    shopify_id = Column(String, nullable=False)  # gid://shopify/LineItem/xxx
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False)

    # Remote references (stored even if the product is deleted remotely)
    product_shopify_id = Column(String, nullable=True)
    variant_shopify_id = Column(String, nullable=True)

    title = Column(String, nullable=True)
    sku = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)

    price = Column(Numeric(18, 4), nullable=True)  # Original unit price
    total_discount = Column(Numeric(18, 4), nullable=True)
    discounted_total = Column(Numeric(18, 4), nullable=True)
    fulfillment_status = Column(String, nullable=True)

    # Derived
    landing_cost = Column(Numeric(18, 4), nullable=True)  # unit cost at sync time * quantity
    net_payment = Column(Numeric(18, 4), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    order = relationship("Order", back_populates="line_items")

    def __str__(self):
        return f"{self.title} x{self.quantity} @ {self.price}"
