from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from orderstore.config import settings
from orderstore.db import ORDER_STATUS_NAMES
from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.coupon import Coupon
from orderstore.models.order import Order, OrderItem
from orderstore.models.user import Address
from orderstore.repositories.cart_repo import CartRepository
from orderstore.repositories.order_repo import OrderRepository, OrderSummary
from orderstore.repositories.payment_repo import PaymentRepository
from orderstore.services.coupon_service import CouponService, evaluate
from orderstore.services.inventory_service import InventoryService
from orderstore.services.sequence_service import OrderNumberService
from orderstore.utils.logging import get_logger
from orderstore.utils.money import ZERO, to_money
from orderstore.utils.transactions import integrity_guard, smart_transaction

log = get_logger("orderstore.orders", "ORDERS")

PENDING = "pending"
PAID = "paid"
PROCESSING = "processing"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"
REFUNDED = "refunded"

TRANSITIONS: Dict[str, frozenset] = {
    PENDING: frozenset({PAID, CANCELLED}),
    PAID: frozenset({PROCESSING, REFUNDED, CANCELLED}),
    PROCESSING: frozenset({SHIPPED, CANCELLED}),
    SHIPPED: frozenset({DELIVERED, REFUNDED}),
    DELIVERED: frozenset({REFUNDED}),
    CANCELLED: frozenset(),
    REFUNDED: frozenset(),
}
TERMINAL_STATES = frozenset({DELIVERED, CANCELLED, REFUNDED})
# states in which the order's stock is still held in `reserved`
RESERVING_STATES = frozenset({PENDING, PAID, PROCESSING})

COUPON_POLICIES = ("reject", "ignore")


@dataclass
class CheckoutResult:
    order: Order
    coupon_applied: bool = False
    coupon_error: Optional[str] = None


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


class OrderService:
    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.carts = CartRepository(db)
        self.orders = OrderRepository(db)
        self.payments = PaymentRepository(db)
        self.inventory = InventoryService(db)
        self.coupons = CouponService(db)
        self.numbers = OrderNumberService(db)

    # ------------------------------------------------------------------ reads

    def get_order(self, order_id: int) -> Order:
        order = self.orders.get(order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def summaries(self, user_id: Optional[int] = None, limit: int = 100) -> List[OrderSummary]:
        return self.orders.summaries(user_id=user_id, limit=limit)

    # --------------------------------------------------------------- checkout

    def _address(self, address_id: Optional[int], owner_id: Optional[int], kind: str):
        if address_id is None:
            return None
        addr = self.db.get(Address, address_id)
        if not addr:
            raise NotFoundError(f"{kind} address", address_id)
        if owner_id is None or addr.user_id != owner_id:
            raise ValidationError(f"{kind} address {address_id} does not belong to the cart owner")
        return addr

    @staticmethod
    def _money_arg(value, name: str) -> Optional[Decimal]:
        if value is None:
            return None
        try:
            amount = to_money(value)
        except ValueError as e:
            raise ValidationError(str(e))
        if amount < 0:
            raise ValidationError(f"{name} must be >= 0")
        return amount

    def checkout(
        self,
        cart_id: int,
        billing_address_id: Optional[int] = None,
        shipping_address_id: Optional[int] = None,
        coupon_code: Optional[str] = None,
        shipping=None,
        tax=None,
        coupon_policy: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Turn a cart into a pending order in one transaction.

        Steps, all-or-nothing:
          1. validate cart, addresses, products and available stock
          2. consume the cart (conditional update, so a cart converts once)
          3. reserve stock per product (conditional update per row)
          4. snapshot items, price the order, apply the coupon
          5. number the order from the counter and insert it as 'pending'

        A bad coupon aborts the checkout under policy "reject"; under
        "ignore" the order is placed at full price and the result carries
        the coupon error.
        """
        policy = coupon_policy or settings.COUPON_FAILURE_POLICY
        if policy not in COUPON_POLICIES:
            raise ValidationError(f"Unknown coupon failure policy: {policy}")
        shipping = self._money_arg(shipping, "shipping")
        tax = self._money_arg(tax, "tax")
        now = self.clock()
        today = now.date()

        with integrity_guard("checkout"), smart_transaction(self.db):
            cart = self.carts.get(cart_id)
            if not cart:
                raise NotFoundError("Cart", cart_id)
            if cart.checked_out:
                raise ConflictError(f"Cart {cart_id} has already been checked out")
            if not cart.items:
                raise ValidationError("Cannot check out an empty cart")

            billing = self._address(billing_address_id, cart.user_id, "Billing")
            shipping_addr = self._address(shipping_address_id, cart.user_id, "Shipping")

            # 1) validate every line before touching any row
            lines = []
            for it in cart.items:
                product = it.product
                if not product.is_active:
                    raise ConflictError(f"Product {product.sku} is not available")
                available = self.inventory.available(product.id)
                if available < it.quantity:
                    raise ConflictError(
                        f"Insufficient stock for {product.sku}: available={available}, requested={it.quantity}"
                    )
                unit_price = to_money(product.price)
                lines.append(
                    {
                        "product": product,
                        "qty": it.quantity,
                        "unit_price": unit_price,
                        "line_total": to_money(unit_price * it.quantity),
                    }
                )
            subtotal = to_money(sum((ln["line_total"] for ln in lines), ZERO))

            coupon: Optional[Coupon] = None
            coupon_error = None
            discount = ZERO
            if coupon_code:
                coupon = self.db.query(Coupon).filter(Coupon.code == coupon_code).first()
                if not coupon:
                    coupon_error = f"Coupon not found: {coupon_code}"
                    if policy == "reject":
                        raise NotFoundError("Coupon", coupon_code)
                else:
                    check = evaluate(coupon, today, subtotal)
                    if check.applicable:
                        discount = check.discount
                    else:
                        coupon_error = check.reason
                        if policy == "reject":
                            raise ConflictError(f"Coupon {coupon_code} rejected: {check.reason}")
                        coupon = None

            # 2) a cart converts at most once
            if not self.carts.mark_consumed(cart.id):
                raise ConflictError(f"Cart {cart_id} has already been checked out")

            # 3) reservations; any failure rolls back the ones before it
            for ln in lines:
                self.inventory.reserve(ln["product"].id, ln["qty"])

            if shipping is None:
                shipping = to_money(settings.DEFAULT_SHIPPING)
            if tax is None:
                tax = to_money((subtotal - discount) * Decimal(settings.TAX_RATE))
            total = subtotal + shipping + tax - discount

            order = Order(
                order_number=self.numbers.next_order_number(today),
                user_id=cart.user_id,
                status_id=self.orders.status_id(PENDING),
                subtotal=subtotal,
                shipping=shipping,
                tax=tax,
                discount=discount,
                total=total,
                billing_address_id=billing.id if billing else None,
                shipping_address_id=shipping_addr.id if shipping_addr else None,
                placed_at=now,
            )
            self.db.add(order)
            self.db.flush()

            # 4) snapshot
            for ln in lines:
                product = ln["product"]
                order.items.append(
                    OrderItem(
                        product_id=product.id,
                        sku=product.sku,
                        name=product.name,
                        unit_price=ln["unit_price"],
                        quantity=ln["qty"],
                        line_total=ln["line_total"],
                    )
                )

            if coupon is not None:
                self.coupons.redeem(coupon, order.id)

            cart.converted_order_id = order.id
            self.db.flush()

        self.db.expire(cart)
        if coupon_error:
            log.warning(f"order {order.order_number} placed without coupon {coupon_code}: {coupon_error}")
        log.info(
            f"checkout cart={cart_id} order={order.order_number} subtotal={order.subtotal} total={order.total}"
        )
        return CheckoutResult(
            order=order,
            coupon_applied=coupon is not None,
            coupon_error=coupon_error,
        )

    # ------------------------------------------------------------ transitions

    def transition(self, order_id: int, new_status: str) -> Order:
        """
        Move an order along the status graph.

        Leaving pending/paid/processing for cancelled or refunded gives the
        reservation back; entering shipped consumes it together with the
        physical quantity. pending -> paid needs settled payments.
        """
        if new_status not in ORDER_STATUS_NAMES:
            raise ValidationError(f"Unknown order status: {new_status}")

        with integrity_guard("order status transition"), smart_transaction(self.db):
            order = self.orders.get_for_update(order_id)
            if not order:
                raise NotFoundError("Order", order_id)
            current = order.status_name
            if not can_transition(current, new_status):
                raise ConflictError(
                    f"Illegal transition for order {order.order_number}: {current} -> {new_status}"
                )
            if new_status == PAID:
                paid = self.payments.paid_amount(order.id)
                if paid < order.total:
                    raise ConflictError(
                        f"Order {order.order_number} is not settled: paid={paid}, total={order.total}"
                    )

            if not self.orders.set_status_if(
                order.id, order.status_id, self.orders.status_id(new_status)
            ):
                raise ConflictError(f"Order {order.order_number} was modified concurrently")

            if new_status in (CANCELLED, REFUNDED) and current in RESERVING_STATES:
                for item in order.items:
                    self.inventory.release(item.product_id, item.quantity)
            elif new_status == SHIPPED:
                for item in order.items:
                    self.inventory.consume(item.product_id, item.quantity)

            self.db.flush()
        self.db.expire(order)
        log.info(f"order {order.order_number}: {current} -> {new_status}")
        return order

    def cancel(self, order_id: int) -> Order:
        return self.transition(order_id, CANCELLED)

    def refund(self, order_id: int) -> Order:
        return self.transition(order_id, REFUNDED)
