from sqlalchemy import (
    Table, Column, String, Text, Boolean, Integer, Numeric, Date, DateTime, JSON, MetaData, UniqueConstraint
)
from sqlalchemy.sql import func

metadata = MetaData()


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_email", String, nullable=False, index=True),
    Column("user_name", String, nullable=True),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False, default="GBP"),
    Column("status", String, nullable=False, default="pending", index=True),
    Column("items", JSON, nullable=False, default=list),
    Column("shipping_address", JSON, nullable=True),
    Column("customer_location", String, nullable=True),
    Column("payment_method", String, nullable=False, default="stripe"),
    Column("payment_intent_id", String, unique=True, nullable=True),
    Column("mpesa_transaction_id", String, nullable=True),
    Column("tracking_number", String, nullable=True),
    Column("tracking_carrier", String, nullable=True),
    Column("estimated_delivery", Date, nullable=True),
    Column("admin_notes", Text, nullable=True),
    Column("shipped_at", DateTime(timezone=True), nullable=True),
    Column("delivered_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


newsletter_subscribers_tbl = Table(
    "newsletter_subscribers",
    metadata,
    Column("id", String, primary_key=True),
    Column("email", String, unique=True, nullable=False),
    Column("name", String, nullable=True),
    Column("source", String, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("subscribed_at", DateTime(timezone=True), server_default=func.now()),
    Column("unsubscribed_at", DateTime(timezone=True), nullable=True)
)


site_content_tbl = Table(
    "site_content",
    metadata,
    Column("id", String, primary_key=True),
    Column("page_name", String, nullable=False),
    Column("section_key", String, nullable=False),
    Column("content", JSON, nullable=False, default=dict),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    UniqueConstraint("page_name", "section_key", name="uq_site_content_page_section")
)


admin_messages_tbl = Table(
    "admin_messages",
    metadata,
    Column("id", String, primary_key=True),
    Column("sender_id", String, nullable=False, index=True),
    Column("recipient_id", String, nullable=True, index=True),
    Column("content", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


user_roles_tbl = Table(
    "user_roles",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("role", String, nullable=False),
    Column("responsibilities", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("user_id", "role", name="uq_user_roles_user_role")
)


payment_configurations_tbl = Table(
    "payment_configurations",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("provider", String, nullable=False, default="stripe"),
    Column("is_test_mode", Boolean, nullable=False, default=True),
    Column("is_default", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("stripe_publishable_key", String, nullable=True),
    Column("connection_type", String, nullable=False, default="api_keys"),
    Column("metadata", JSON, nullable=False, default=dict),
    Column("created_by", String, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("price", Numeric(12, 2), nullable=False),
    Column("sale_price", Numeric(12, 2), nullable=True),
    Column("currency", String(3), nullable=False, default="GBP"),
    Column("category", String, nullable=False, index=True),
    Column("images", JSON, nullable=False, default=list),
    Column("image_url", String, nullable=True),
    Column("carbon_offset_kg", Numeric(8, 2), nullable=True),
    Column("source_location", String, nullable=True),
    Column("stock_quantity", Integer, nullable=False, default=0),
    Column("sku", String, unique=True, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("featured", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)
