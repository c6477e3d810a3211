from datetime import date

from sqlalchemy.orm import Session

from orderstore.config import settings
from orderstore.db import ORDER_COUNTER_NAME
from orderstore.errors import NotFoundError
from orderstore.models.order import OrderCounter
from orderstore.utils.transactions import smart_transaction


def format_order_number(day: date, seq: int, prefix: str = None) -> str:
    """ORD-YYYYMMDD-NNNNNN"""
    return f"{prefix or settings.ORDER_NUMBER_PREFIX}-{day:%Y%m%d}-{seq:06d}"


class OrderNumberService:
    """
    Hands out order numbers from a counter row.

    The sequence is global: it never resets at midnight, so the numeric part
    alone is already unique and the date is informational.
    """

    def __init__(self, db: Session, counter_name: str = ORDER_COUNTER_NAME):
        self.db = db
        self.counter_name = counter_name

    def next_value(self) -> int:
        with smart_transaction(self.db):
            # increment first; the row lock taken by the UPDATE serializes callers
            updated = (
                self.db.query(OrderCounter)
                .filter(OrderCounter.name == self.counter_name)
                .update({OrderCounter.value: OrderCounter.value + 1}, synchronize_session=False)
            )
            if updated != 1:
                raise NotFoundError("Order counter", self.counter_name)
            return (
                self.db.query(OrderCounter.value)
                .filter(OrderCounter.name == self.counter_name)
                .scalar()
            )

    def next_order_number(self, today: date) -> str:
        return format_order_number(today, self.next_value())
