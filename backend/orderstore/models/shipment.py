from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from orderstore.db import Base

SHIPMENT_STATUSES = ("label_created", "in_transit", "delivered", "returned")


class Shipment(Base):
    __tablename__ = "shipments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(255), nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    estimated_delivery = Column(Date, nullable=True)
    status = Column(
        String(50), nullable=False, default="label_created"
    )  # label_created, in_transit, delivered, returned
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    order = relationship("Order", back_populates="shipments")
