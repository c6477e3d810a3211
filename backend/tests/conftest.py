import os
import tempfile
from datetime import datetime, timezone

# point the store at a throw-away database before anything imports orderstore
_tmpdir = tempfile.mkdtemp(prefix="orderstore-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_tmpdir, "test.db")
os.environ["COUPON_FAILURE_POLICY"] = "reject"

import pytest

from orderstore.db import SessionLocal, init_db
from orderstore.services.account_service import AccountService
from orderstore.services.cart_service import CartService
from orderstore.services.catalog_service import CatalogService
from orderstore.services.order_service import OrderService

FIXED_NOW = datetime(2025, 9, 24, 10, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def orders(db, clock):
    return OrderService(db, clock=clock)


@pytest.fixture
def make_product(db):
    catalog = CatalogService(db)
    counter = {"n": 0}

    def _make(sku=None, price="10.00", stock=10, name=None):
        counter["n"] += 1
        sku = sku or f"SKU-{counter['n']:03d}"
        return catalog.create_product(sku=sku, name=name or f"Product {sku}", price=price, stock=stock)

    return _make


@pytest.fixture
def make_user(db):
    accounts = AccountService(db)
    counter = {"n": 0}

    def _make(first_name="Ada", last_name="Lovelace", roles=("customer",)):
        counter["n"] += 1
        return accounts.create_user(
            email=f"user{counter['n']}@example.com",
            password_hash="hash",
            first_name=first_name,
            last_name=last_name,
            roles=roles,
        )

    return _make


@pytest.fixture
def make_cart(db):
    """make_cart([(product, qty), ...], user=None) -> cart id"""
    carts = CartService(db)

    def _make(lines, user=None):
        if user is not None:
            cart = carts.get_or_create_cart(user_id=user.id)
        else:
            cart = carts.get_or_create_guest_cart()
        cart_id = cart.id
        for product, qty in lines:
            carts.add_item(cart_id, product.id, qty)
        return cart_id

    return _make
