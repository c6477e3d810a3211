from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from orderstore.db import Base


def _now():
    return datetime.now(timezone.utc)


class OrderStatus(Base):
    __tablename__ = "order_status"
    id = Column(Integer, primary_key=True, autoincrement=True)
    status_name = Column(String(50), unique=True, nullable=False)


class OrderCounter(Base):
    """Named monotonically increasing counter, advanced with a single UPDATE."""

    __tablename__ = "order_counters"
    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal"),
        CheckConstraint("shipping >= 0", name="ck_orders_shipping"),
        CheckConstraint("tax >= 0", name="ck_orders_tax"),
        CheckConstraint("discount >= 0", name="ck_orders_discount"),
        CheckConstraint("total >= 0", name="ck_orders_total"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status_id = Column(
        Integer,
        ForeignKey("order_status.id", ondelete="RESTRICT"),
        nullable=False,
        default=1,
    )
    subtotal = Column(Numeric(12, 2), nullable=False)
    shipping = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
    billing_address_id = Column(
        Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True
    )
    shipping_address_id = Column(
        Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True
    )
    placed_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    status = relationship("OrderStatus", lazy="joined")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Payment.id",
    )
    shipments = relationship(
        "Shipment",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Shipment.id",
    )

    @property
    def status_name(self):
        return self.status.status_name if self.status else None

    def totals_consistent(self) -> bool:
        return self.total == self.subtotal + self.shipping + self.tax - self.discount


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price"),
        CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        CheckConstraint("line_total >= 0", name="ck_order_items_line_total"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    # snapshot taken at checkout; later product edits never reach these columns
    sku = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
