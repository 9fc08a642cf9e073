from sqlalchemy import (
    Table, Column, String, Integer, Boolean, Enum, DateTime, JSON, Numeric, MetaData,
    ForeignKey, CheckConstraint, UniqueConstraint
)
from sqlalchemy.sql import func

from storefront_orders.domain.models import OrderStatus, PaymentStatus, DiscountType

metadata = MetaData()


def _enum(enum_cls, name: str) -> Enum:
    # храним значения в нижнем регистре, а не имена членов enum
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_number", String(32), unique=True, nullable=False),
    Column("user_id", String, nullable=False, index=True),
    Column("subtotal", Numeric(12, 2), nullable=False),
    Column("discount_amount", Numeric(12, 2), nullable=False, default=0),
    Column("coupon_code", String(20), nullable=True),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("status", _enum(OrderStatus, "order_status"), nullable=False, default=OrderStatus.PENDING, index=True),
    Column("payment_status", _enum(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.PENDING),
    Column("gateway_order_id", String, unique=True, nullable=True),
    Column("gateway_payment_id", String, nullable=True),
    Column("gateway_signature", String, nullable=True),
    Column("shipping_address", JSON, nullable=False),
    Column("tracking_number", String, nullable=True),
    Column("estimated_delivery", DateTime(timezone=True), nullable=True),
    Column("delivered_at", DateTime(timezone=True), nullable=True),
    Column("notes", String, nullable=True),
    Column("idempotency_key", String, nullable=True),
    Column("version", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    UniqueConstraint("user_id", "idempotency_key", name="uq_orders_user_idempotency_key")
)


order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("product_id", String, nullable=False),
    Column("product_name", String, nullable=False),
    Column("product_price", Numeric(12, 2), nullable=False),
    Column("product_image", String, nullable=True),
    Column("product_brand", String, nullable=True),
    Column("product_category", String, nullable=True),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False)
)


coupons_tbl = Table(
    "coupons",
    metadata,
    Column("id", String, primary_key=True),
    Column("code", String(20), unique=True, nullable=False),
    Column("discount_type", _enum(DiscountType, "discount_type"), nullable=False),
    Column("value", Numeric(12, 2), nullable=False),
    Column("min_cart_value", Numeric(12, 2), nullable=False, default=0),
    Column("is_active", Boolean, nullable=False, default=True, index=True),
    Column("usage_count", Integer, nullable=False, default=0),
    Column("max_usage", Integer, nullable=True),
    Column("description", String(200), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    CheckConstraint(
        "max_usage IS NULL OR usage_count <= max_usage", name="ck_coupons_usage_within_cap"
    )
)


order_sequences_tbl = Table(
    "order_sequences",
    metadata,
    Column("name", String, primary_key=True),
    Column("value", Integer, nullable=False)
)


outbox_events_tbl = Table(
    "outbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("order_id", String, nullable=False),
    Column("status", String, default="pending"),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)
