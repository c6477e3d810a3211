from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from orderstore.adapters.mock_courier import CourierError, MockCourierAdapter
from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.shipment import Shipment
from orderstore.services.order_service import (
    DELIVERED,
    PAID,
    PROCESSING,
    SHIPPED,
    OrderService,
)
from orderstore.utils.logging import get_logger
from orderstore.utils.transactions import integrity_guard, smart_transaction

log = get_logger("orderstore.fulfilment", "FULFILMENT")

SHIPMENT_TRANSITIONS = {
    "label_created": {"in_transit"},
    "in_transit": {"delivered", "returned"},
    "delivered": set(),
    "returned": set(),
}
# labels are printed for orders not yet shipped; later shipments of a split
# order may still leave once the order is shipped
LABEL_ORDER_STATES = {PAID, PROCESSING}
DISPATCH_ORDER_STATES = {PAID, PROCESSING, SHIPPED}


class FulfilmentService:
    """
    Records shipments and rolls their progress up into the order status.

    The first shipment to leave moves the order to shipped (through
    processing when needed), which is where stock physically leaves. The
    order becomes delivered once every one of its shipments is delivered.
    """

    def __init__(
        self,
        db: Session,
        courier_adapter: Optional[MockCourierAdapter] = None,
        order_service: Optional[OrderService] = None,
    ):
        self.db = db
        self.courier = courier_adapter or MockCourierAdapter()
        self.orders = order_service or OrderService(db)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def get_shipment(self, shipment_id: int) -> Shipment:
        s = self.db.get(Shipment, shipment_id)
        if not s:
            raise NotFoundError("Shipment", shipment_id)
        return s

    def list_shipments(self, order_id: int) -> List[Shipment]:
        return (
            self.db.query(Shipment)
            .filter(Shipment.order_id == order_id)
            .order_by(Shipment.id)
            .all()
        )

    def create_shipment(
        self,
        order_id: int,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
        estimated_delivery: Optional[date] = None,
    ) -> Shipment:
        with integrity_guard("create shipment"), smart_transaction(self.db):
            order = self.orders.get_order(order_id)
            if order.status_name not in LABEL_ORDER_STATES:
                raise ConflictError(
                    f"Order {order.order_number} cannot ship from status {order.status_name}"
                )
            shipment = Shipment(
                order_id=order.id,
                carrier=carrier,
                tracking_number=tracking_number,
                estimated_delivery=estimated_delivery,
                status="label_created",
            )
            self.db.add(shipment)
            self.db.flush()
        return shipment

    def book_shipment(self, order_id: int, estimated_delivery: Optional[date] = None) -> Shipment:
        """Ask the courier for a label, then record its carrier and tracking strings."""
        order = self.orders.get_order(order_id)
        if order.status_name not in LABEL_ORDER_STATES:
            raise ConflictError(
                f"Order {order.order_number} cannot ship from status {order.status_name}"
            )
        try:
            booking = self.courier.book_shipment(order.order_number)
        except CourierError as e:
            raise ConflictError(f"Courier booking failed: {e}")
        return self.create_shipment(
            order_id,
            carrier=booking["carrier"],
            tracking_number=booking["tracking_number"],
            estimated_delivery=estimated_delivery,
        )

    def _advance(self, shipment: Shipment, new_status: str):
        allowed = SHIPMENT_TRANSITIONS.get(shipment.status, set())
        if new_status not in SHIPMENT_TRANSITIONS:
            raise ValidationError(f"Unknown shipment status: {new_status}")
        if new_status not in allowed:
            raise ConflictError(
                f"Illegal shipment transition: {shipment.status} -> {new_status}"
            )
        shipment.status = new_status

    def mark_in_transit(self, shipment_id: int) -> Shipment:
        with smart_transaction(self.db):
            shipment = self.get_shipment(shipment_id)
            order = self.orders.get_order(shipment.order_id)
            if order.status_name not in DISPATCH_ORDER_STATES:
                raise ConflictError(
                    f"Order {order.order_number} is {order.status_name}; shipment {shipment_id} cannot leave"
                )
            self._advance(shipment, "in_transit")
            shipment.shipped_at = self._now()
            self.db.flush()
            if order.status_name == PAID:
                self.orders.transition(order.id, PROCESSING)
                self.db.refresh(order)
            if order.status_name == PROCESSING:
                self.orders.transition(order.id, SHIPPED)
        log.info(f"shipment {shipment_id} in transit")
        return shipment

    def mark_delivered(self, shipment_id: int) -> Shipment:
        with smart_transaction(self.db):
            shipment = self.get_shipment(shipment_id)
            self._advance(shipment, "delivered")
            self.db.flush()
            order = self.orders.get_order(shipment.order_id)
            statuses = [s.status for s in self.list_shipments(order.id)]
            if order.status_name == SHIPPED and all(st == "delivered" for st in statuses):
                self.orders.transition(order.id, DELIVERED)
        log.info(f"shipment {shipment_id} delivered")
        return shipment
