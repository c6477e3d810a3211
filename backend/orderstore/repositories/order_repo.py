from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from orderstore.models.order import Order, OrderStatus
from orderstore.models.user import User


@dataclass
class OrderSummary:
    order_id: int
    order_number: str
    user_id: Optional[int]
    customer_name: Optional[str]
    status_name: Optional[str]
    total: Decimal
    placed_at: datetime


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def get_for_update(self, order_id: int) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(Order.id == order_id)
            .with_for_update(of=Order)
            .populate_existing()
            .first()
        )

    def status_id(self, status_name: str) -> Optional[int]:
        row = (
            self.db.query(OrderStatus.id)
            .filter(OrderStatus.status_name == status_name)
            .first()
        )
        return row[0] if row else None

    def set_status_if(self, order_id: int, expected_status_id: int, new_status_id: int) -> bool:
        """Compare-and-set on the status column; False if the order moved meanwhile."""
        updated = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.status_id == expected_status_id)
            .update({Order.status_id: new_status_id}, synchronize_session=False)
        )
        return updated == 1

    def summaries(self, user_id: Optional[int] = None, limit: int = 100) -> List[OrderSummary]:
        """
        Order summary read model: orders outer-joined to users and statuses,
        so an order whose user or status row is gone still shows up with nulls.
        """
        qry = (
            self.db.query(
                Order.id,
                Order.order_number,
                Order.user_id,
                User.first_name,
                User.last_name,
                OrderStatus.status_name,
                Order.total,
                Order.placed_at,
            )
            .outerjoin(User, Order.user_id == User.id)
            .outerjoin(OrderStatus, Order.status_id == OrderStatus.id)
        )
        if user_id is not None:
            qry = qry.filter(Order.user_id == user_id)
        rows = qry.order_by(Order.id).limit(limit).all()
        out = []
        for r in rows:
            name = None
            if r.first_name is not None or r.last_name is not None:
                name = f"{r.first_name or ''} {r.last_name or ''}".strip()
            out.append(
                OrderSummary(
                    order_id=r.id,
                    order_number=r.order_number,
                    user_id=r.user_id,
                    customer_name=name,
                    status_name=r.status_name,
                    total=r.total,
                    placed_at=r.placed_at,
                )
            )
        return out
