"""Order & OrderItem models."""

import enum
import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.db.base import Base
from storefront.models.mixins import UUIDPrimaryKeyMixin, TimestampMixin, str_enum


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    OUT_FOR_DELIVERY = "outForDelivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


STATUS_ALIASES = {
    "out_for_delivery": OrderStatus.OUT_FOR_DELIVERY,
    "outfordelivery": OrderStatus.OUT_FOR_DELIVERY,
}


def parse_order_status(value: object) -> OrderStatus | None:
    """Resolve a status name or alias; ``None`` when it is not a known status."""
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()
    try:
        return OrderStatus(value)
    except ValueError:
        return STATUS_ALIASES.get(value.lower())


class Order(TimestampMixin, Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    status: Mapped[OrderStatus] = mapped_column(
        str_enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    # Point-in-time snapshot, never rewritten when the address or catalog changes
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(20))
    customer_address: Mapped[str | None] = mapped_column(Text)
    items_json: Mapped[str] = mapped_column(Text, nullable=False)

    delivery_slot: Mapped[str | None] = mapped_column(String(80))
    delivery_instructions: Mapped[str | None] = mapped_column(Text)
    payment_method: Mapped[str | None] = mapped_column(String(40))

    # Foreign keys
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    delivery_address_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("user_addresses.id", ondelete="SET NULL")
    )

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Order {self.id} total={self.total_amount} status={self.status}>"


class OrderItem(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "order_items"

    # Snapshot of the catalog entry at order time; no FK so history survives catalog edits
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Foreign keys
    order_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Relationships
    order = relationship("Order", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem product={self.product_id} qty={self.quantity}>"
