from decimal import Decimal

import pytest
from sqlalchemy import exc as sa_exc

from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.cart import Cart
from orderstore.services.cart_service import CartService
from orderstore.services.catalog_service import CatalogService


def test_cart_needs_exactly_one_owner(db, make_user):
    svc = CartService(db)
    user = make_user()
    with pytest.raises(ValidationError):
        svc.get_or_create_cart()
    with pytest.raises(ValidationError):
        svc.get_or_create_cart(user_id=user.id, session_token="tok")


def test_user_cart_is_reused_until_checked_out(db, make_user):
    svc = CartService(db)
    user = make_user()
    first = svc.get_or_create_cart(user_id=user.id).id
    assert svc.get_or_create_cart(user_id=user.id).id == first


def test_unknown_user(db):
    with pytest.raises(NotFoundError):
        CartService(db).get_or_create_cart(user_id=12345)


def test_add_item_increments_existing_line(db, make_product):
    svc = CartService(db)
    p = make_product(price="2.50")
    cart_id = svc.get_or_create_guest_cart().id
    svc.add_item(cart_id, p.id, 2)
    svc.add_item(cart_id, p.id, 1)
    cart = svc.get_cart(cart_id)
    assert [(it.product_id, it.quantity) for it in cart.items] == [(p.id, 3)]
    assert svc.preview_subtotal(cart_id) == Decimal("7.50")


def test_update_quantity_and_remove(db, make_product):
    svc = CartService(db)
    a = make_product()
    b = make_product()
    cart_id = svc.get_or_create_guest_cart("guest-1").id
    svc.add_item(cart_id, a.id, 1)
    svc.add_item(cart_id, b.id, 1)

    svc.update_quantity(cart_id, a.id, 4)
    svc.update_quantity(cart_id, b.id, 0)
    cart = svc.get_cart(cart_id)
    assert [(it.product_id, it.quantity) for it in cart.items] == [(a.id, 4)]

    svc.remove_item(cart_id, a.id)
    assert svc.get_cart(cart_id).items == []
    with pytest.raises(NotFoundError):
        svc.remove_item(cart_id, a.id)


@pytest.mark.parametrize("qty", [0, -3])
def test_add_item_rejects_non_positive_quantity(db, make_product, qty):
    svc = CartService(db)
    p = make_product()
    cart_id = svc.get_or_create_guest_cart().id
    with pytest.raises(ValidationError):
        svc.add_item(cart_id, p.id, qty)


def test_inactive_product_cannot_be_added(db, make_product):
    svc = CartService(db)
    p = make_product()
    CatalogService(db).deactivate_product(p.id)
    cart_id = svc.get_or_create_guest_cart().id
    with pytest.raises(ValidationError):
        svc.add_item(cart_id, p.id, 1)


def test_checked_out_cart_is_read_only(db, make_product, make_cart, orders):
    p = make_product()
    cart_id = make_cart([(p, 1)])
    orders.checkout(cart_id)
    with pytest.raises(ConflictError):
        CartService(db).add_item(cart_id, p.id, 1)


def test_merge_guest_into_user(db, make_product, make_user):
    svc = CartService(db)
    a = make_product()
    b = make_product()
    user = make_user()
    user_cart_id = svc.get_or_create_cart(user_id=user.id).id
    svc.add_item(user_cart_id, a.id, 1)
    guest_id = svc.get_or_create_guest_cart("guest-merge").id
    svc.add_item(guest_id, a.id, 2)
    svc.add_item(guest_id, b.id, 1)

    merged = svc.merge_guest_into_user("guest-merge", user.id)
    assert merged.id == user_cart_id
    db.expire_all()
    lines = {it.product_id: it.quantity for it in svc.get_cart(user_cart_id).items}
    assert lines == {a.id: 3, b.id: 1}
    with pytest.raises(NotFoundError):
        svc.get_cart(guest_id)


def test_one_open_cart_per_user(db, make_user):
    user = make_user()
    db.add(Cart(user_id=user.id))
    db.commit()
    db.add(Cart(user_id=user.id))
    with pytest.raises(sa_exc.IntegrityError):
        db.flush()
    db.rollback()


def test_lost_create_race_returns_existing_cart(db, make_user, monkeypatch):
    svc = CartService(db)
    user = make_user()
    existing = svc.get_or_create_cart(user_id=user.id).id
    lookup = svc.cart_repo.get_by_user
    calls = []

    def stale_first(user_id):
        # the first lookup misses the cart another session just opened
        calls.append(user_id)
        return None if len(calls) == 1 else lookup(user_id)

    monkeypatch.setattr(svc.cart_repo, "get_by_user", stale_first)
    assert svc.get_or_create_cart(user_id=user.id).id == existing
    assert len(calls) == 2
    assert db.query(Cart).filter(Cart.user_id == user.id).count() == 1
