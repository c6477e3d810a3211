from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
)

from orderstore.db import Base

DISCOUNT_TYPES = ("percent", "fixed")


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_value >= 0", name="ck_coupons_value"),
        CheckConstraint("used_count >= 0", name="ck_coupons_used"),
        CheckConstraint(
            "max_uses IS NULL OR used_count <= max_uses", name="ck_coupons_cap"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    discount_type = Column(
        Enum(*DISCOUNT_TYPES, name="discount_type"), nullable=False
    )
    discount_value = Column(Numeric(10, 2), nullable=False)
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    valid_from = Column(Date, nullable=True)
    valid_to = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class OrderCoupon(Base):
    __tablename__ = "order_coupons"
    # one application of a given coupon per order
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True
    )
    coupon_id = Column(
        Integer, ForeignKey("coupons.id", ondelete="RESTRICT"), primary_key=True
    )
