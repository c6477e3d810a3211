from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship

from orderstore.db import Base


class Inventory(Base):
    __tablename__ = "inventory"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity"),
        CheckConstraint("reserved >= 0", name="ck_inventory_reserved"),
        CheckConstraint("reserved <= quantity", name="ck_inventory_available"),
    )

    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    )
    quantity = Column(Integer, nullable=False, default=0)
    # held for placed orders that have not shipped yet
    reserved = Column(Integer, nullable=False, default=0)
    reorder_threshold = Column(Integer, nullable=True, default=0)
    last_restock = Column(DateTime, nullable=True)

    product = relationship("Product", back_populates="inventory")

    @property
    def available(self) -> int:
        return self.quantity - self.reserved
