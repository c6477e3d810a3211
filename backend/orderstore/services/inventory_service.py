from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.inventory import Inventory
from orderstore.models.product import Product
from orderstore.utils.logging import get_logger
from orderstore.utils.transactions import smart_transaction

log = get_logger("orderstore.inventory", "INVENTORY")


class InventoryService:
    """
    Owns the quantity/reserved pair of every product.

    Every mutation is one conditional UPDATE whose WHERE clause carries the
    stock check, followed by an affected-row check. A failed check raises
    ConflictError at once; retrying is up to the caller.
    """

    def __init__(self, db: Session):
        self.db = db

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _check_qty(qty: int):
        if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
            raise ValidationError("Quantity must be a positive integer")

    def get(self, product_id: int) -> Inventory:
        inv = self.db.get(Inventory, product_id)
        if not inv:
            raise NotFoundError("Inventory", product_id)
        return inv

    def available(self, product_id: int) -> int:
        inv = self.db.get(Inventory, product_id)
        if not inv:
            return 0
        self.db.refresh(inv)
        return inv.available

    def _conditional_update(self, product_id: int, guard, values) -> bool:
        updated = (
            self.db.query(Inventory)
            .filter(Inventory.product_id == product_id, *guard)
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def _expire(self, product_id: int):
        inv = self.db.identity_map.get(self.db.identity_key(Inventory, product_id))
        if inv is not None:
            self.db.expire(inv)

    def _guarded(self, product_id: int, guard, values, failure: str):
        with smart_transaction(self.db):
            ok = self._conditional_update(product_id, guard, values)
            self._expire(product_id)
            if not ok:
                raise ConflictError(failure)

    def reserve(self, product_id: int, qty: int):
        """Hold `qty` units: reserved += qty where quantity - reserved >= qty."""
        self._check_qty(qty)
        self._guarded(
            product_id,
            [Inventory.quantity - Inventory.reserved >= qty],
            {Inventory.reserved: Inventory.reserved + qty},
            f"Insufficient stock for product {product_id}: requested {qty}",
        )
        log.debug(f"reserved product={product_id} qty={qty}")

    def release(self, product_id: int, qty: int):
        """Give back a reservation that will not ship."""
        self._check_qty(qty)
        self._guarded(
            product_id,
            [Inventory.reserved >= qty],
            {Inventory.reserved: Inventory.reserved - qty},
            f"Cannot release {qty} units of product {product_id}: not reserved",
        )
        log.debug(f"released product={product_id} qty={qty}")

    def consume(self, product_id: int, qty: int):
        """Stock physically leaves: quantity and reserved drop together."""
        self._check_qty(qty)
        self._guarded(
            product_id,
            [Inventory.reserved >= qty, Inventory.quantity >= qty],
            {
                Inventory.quantity: Inventory.quantity - qty,
                Inventory.reserved: Inventory.reserved - qty,
            },
            f"Cannot ship {qty} units of product {product_id}: not reserved",
        )
        log.debug(f"consumed product={product_id} qty={qty}")

    def restock(self, product_id: int, qty: int) -> Inventory:
        self._check_qty(qty)
        with smart_transaction(self.db):
            if not self.db.get(Product, product_id):
                raise NotFoundError("Product", product_id)
            now = self._now()
            ok = self._conditional_update(
                product_id,
                [],
                {Inventory.quantity: Inventory.quantity + qty, Inventory.last_restock: now},
            )
            if not ok:
                self.db.add(Inventory(product_id=product_id, quantity=qty, reserved=0, last_restock=now))
                self.db.flush()
            self._expire(product_id)
        log.info(f"restocked product={product_id} qty={qty}")
        return self.get(product_id)

    def set_reorder_threshold(self, product_id: int, threshold: int) -> Inventory:
        if threshold < 0:
            raise ValidationError("Reorder threshold must be >= 0")
        with smart_transaction(self.db):
            inv = self.get(product_id)
            inv.reorder_threshold = threshold
            self.db.flush()
        return inv

    def below_reorder_threshold(self, limit: Optional[int] = None) -> List[Inventory]:
        """Records whose available stock has dropped to or under their threshold."""
        qry = (
            self.db.query(Inventory)
            .filter(Inventory.reorder_threshold > 0)
            .filter(Inventory.quantity - Inventory.reserved <= Inventory.reorder_threshold)
            .order_by(Inventory.product_id)
        )
        if limit:
            qry = qry.limit(limit)
        return qry.all()
