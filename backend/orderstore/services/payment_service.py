from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.order import Order
from orderstore.models.payment import PAYMENT_STATUSES, Payment
from orderstore.repositories.payment_repo import PaymentRepository
from orderstore.services.order_service import CANCELLED, PAID, PENDING, OrderService
from orderstore.utils.logging import get_logger
from orderstore.utils.money import to_money
from orderstore.utils.transactions import integrity_guard, smart_transaction

log = get_logger("orderstore.payments", "PAYMENTS")


class PaymentService:
    """
    Append-only payment ledger per order.

    Settlement is derived, never stored: an order is settled when the sum of
    its successful payments reaches its total.
    """

    def __init__(self, db: Session, order_service: Optional[OrderService] = None):
        self.db = db
        self.repo = PaymentRepository(db)
        self.orders = order_service or OrderService(db)

    def record_payment(
        self,
        order_id: int,
        method: str,
        amount,
        status: str = "success",
        provider_reference: Optional[str] = None,
    ) -> Payment:
        if status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status: {status}")
        try:
            amount = to_money(amount)
        except ValueError as e:
            raise ValidationError(str(e))
        if amount < 0:
            raise ValidationError("Payment amount must be >= 0")

        with integrity_guard("record payment"), smart_transaction(self.db):
            order = self.db.get(Order, order_id)
            if not order:
                raise NotFoundError("Order", order_id)
            if order.status_name == CANCELLED:
                raise ConflictError(f"Order {order.order_number} is cancelled")
            pm = self.repo.method_by_name(method)
            if not pm:
                raise NotFoundError("Payment method", method)
            p = Payment(
                order_id=order.id,
                payment_method_id=pm.id,
                amount=amount,
                status=status,
                provider_reference=provider_reference,
                paid_at=datetime.now(timezone.utc) if status == "success" else None,
            )
            self.db.add(p)
            self.db.flush()
        log.info(f"payment order={order_id} method={method} amount={amount} status={status}")
        return p

    def payments_for(self, order_id: int) -> List[Payment]:
        return self.repo.for_order(order_id)

    def paid_amount(self, order_id: int) -> Decimal:
        return self.repo.paid_amount(order_id)

    def is_settled(self, order_id: int) -> bool:
        order = self.orders.get_order(order_id)
        return self.paid_amount(order_id) >= order.total

    def settle(self, order_id: int) -> Order:
        """Move a pending order to paid once its successful payments cover the total."""
        with smart_transaction(self.db):
            order = self.orders.get_order(order_id)
            if order.status_name != PENDING:
                raise ConflictError(
                    f"Order {order.order_number} is {order.status_name}, not pending"
                )
            order = self.orders.transition(order_id, PAID)
        return order
