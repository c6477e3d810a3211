from decimal import Decimal

import pytest

from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.inventory import Inventory
from orderstore.services.order_service import TERMINAL_STATES, TRANSITIONS, can_transition
from orderstore.services.payment_service import PaymentService

ALL = ["pending", "paid", "processing", "shipped", "delivered", "cancelled", "refunded"]


def _stock(db, product_id):
    db.expire_all()
    inv = db.get(Inventory, product_id)
    return inv.quantity, inv.reserved


@pytest.fixture
def placed(db, make_product, make_cart, orders):
    """A pending order for 2 units of a product stocked at 5."""
    p = make_product(price="10.00", stock=5)
    order = orders.checkout(make_cart([(p, 2)])).order
    return order.id, p.id


def _pay_in_full(db, order_id, orders):
    order = orders.get_order(order_id)
    PaymentService(db, orders).record_payment(order_id, "credit_card", order.total)


def test_transition_table():
    expected = {
        ("pending", "paid"),
        ("pending", "cancelled"),
        ("paid", "processing"),
        ("paid", "refunded"),
        ("paid", "cancelled"),
        ("processing", "shipped"),
        ("processing", "cancelled"),
        ("shipped", "delivered"),
        ("shipped", "refunded"),
        ("delivered", "refunded"),
    }
    allowed = {(a, b) for a in ALL for b in ALL if can_transition(a, b)}
    assert allowed == expected
    assert set(TRANSITIONS) == set(ALL)
    assert not TRANSITIONS["cancelled"] and not TRANSITIONS["refunded"]
    assert TERMINAL_STATES == {"delivered", "cancelled", "refunded"}


def test_delivered_to_pending_is_rejected(db, placed, orders):
    order_id, _ = placed
    _pay_in_full(db, order_id, orders)
    for status in ("paid", "processing", "shipped", "delivered"):
        orders.transition(order_id, status)
    with pytest.raises(ConflictError):
        orders.transition(order_id, "pending")
    assert orders.get_order(order_id).status_name == "delivered"


def test_unknown_status(db, placed, orders):
    with pytest.raises(ValidationError):
        orders.transition(placed[0], "lost")


def test_unknown_order(db, orders):
    with pytest.raises(NotFoundError):
        orders.transition(999, "cancelled")


def test_cancel_pending_releases_reservation(db, placed, orders):
    order_id, product_id = placed
    assert _stock(db, product_id) == (5, 2)
    orders.cancel(order_id)
    assert _stock(db, product_id) == (5, 0)
    assert orders.get_order(order_id).status_name == "cancelled"


def test_cancel_twice_does_not_release_twice(db, placed, orders):
    order_id, product_id = placed
    orders.cancel(order_id)
    with pytest.raises(ConflictError):
        orders.cancel(order_id)
    assert _stock(db, product_id) == (5, 0)


def test_refund_of_paid_order_releases_reservation(db, placed, orders):
    order_id, product_id = placed
    _pay_in_full(db, order_id, orders)
    orders.transition(order_id, "paid")
    orders.refund(order_id)
    assert _stock(db, product_id) == (5, 0)


def test_shipping_consumes_stock(db, placed, orders):
    order_id, product_id = placed
    _pay_in_full(db, order_id, orders)
    orders.transition(order_id, "paid")
    orders.transition(order_id, "processing")
    assert _stock(db, product_id) == (5, 2)
    orders.transition(order_id, "shipped")
    assert _stock(db, product_id) == (3, 0)


def test_refund_after_shipping_leaves_inventory_alone(db, placed, orders):
    order_id, product_id = placed
    _pay_in_full(db, order_id, orders)
    for status in ("paid", "processing", "shipped"):
        orders.transition(order_id, status)
    orders.refund(order_id)
    assert _stock(db, product_id) == (3, 0)
    with pytest.raises(ConflictError):
        orders.transition(order_id, "delivered")


def test_paid_requires_settled_payments(db, placed, orders):
    order_id, _ = placed
    with pytest.raises(ConflictError):
        orders.transition(order_id, "paid")

    payments = PaymentService(db, orders)
    payments.record_payment(order_id, "paypal", "5.00")
    payments.record_payment(order_id, "paypal", "15.00", status="failed")
    with pytest.raises(ConflictError):
        orders.transition(order_id, "paid")

    payments.record_payment(order_id, "credit_card", "15.00")
    assert orders.transition(order_id, "paid").status_name == "paid"


def test_totals_hold_after_every_transition(db, placed, orders):
    order_id, _ = placed
    _pay_in_full(db, order_id, orders)
    for status in ("paid", "processing", "shipped", "delivered", "refunded"):
        order = orders.transition(order_id, status)
        assert order.totals_consistent()
        assert order.total == Decimal("20.00")
