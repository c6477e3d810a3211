from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from orderstore.db import Base


def _now():
    return datetime.now(timezone.utc)


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # owned by a user or by a guest session, never both
        CheckConstraint(
            "(user_id IS NULL) <> (session_token IS NULL)", name="ck_carts_owner"
        ),
        # at most one open cart per user
        Index(
            "uq_carts_open_user",
            "user_id",
            unique=True,
            sqlite_where=text("checked_out = 0"),
            postgresql_where=text("NOT checked_out"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    session_token = Column(String(255), unique=True, index=True, nullable=True)
    checked_out = Column(Boolean, default=False, nullable=False)
    converted_order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )
