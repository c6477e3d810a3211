from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from orderstore.models.payment import Payment, PaymentMethod
from orderstore.utils.money import ZERO


class PaymentRepository:
    def __init__(self, db: Session):
        self.db = db

    def method_by_name(self, method_name: str) -> Optional[PaymentMethod]:
        return (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.method_name == method_name)
            .first()
        )

    def for_order(self, order_id: int) -> List[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.order_id == order_id)
            .order_by(Payment.id)
            .all()
        )

    def paid_amount(self, order_id: int) -> Decimal:
        """Sum of successful payments. Summed in Python to keep exact decimals."""
        rows = (
            self.db.query(Payment.amount)
            .filter(Payment.order_id == order_id, Payment.status == "success")
            .all()
        )
        return sum((Decimal(r[0]) for r in rows), ZERO)
