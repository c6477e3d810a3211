import pytest

from orderstore.db import ADMIN_EMAIL, ORDER_STATUS_NAMES, PAYMENT_METHOD_NAMES
from orderstore.errors import IntegrityError, NotFoundError, ValidationError
from orderstore.models.order import Order, OrderStatus
from orderstore.models.payment import PaymentMethod
from orderstore.models.product import Category, ProductCategory
from orderstore.models.user import Role, User
from orderstore.services.account_service import AccountService
from orderstore.services.cart_service import CartService
from orderstore.services.catalog_service import CatalogService


def test_reference_data_is_seeded(db):
    names = sorted(r.role_name for r in db.query(Role).all())
    assert names == ["admin", "customer", "vendor"]
    admin = db.query(User).filter(User.email == ADMIN_EMAIL).one()
    assert admin.role_names == ["admin"]


def test_create_user_gets_customer_role(db, make_user):
    user = make_user()
    assert user.role_names == ["customer"]
    AccountService(db).assign_role(user.id, "vendor")
    assert AccountService(db).get_user(user.id).role_names == ["customer", "vendor"]


def test_duplicate_email_is_an_integrity_error(db):
    svc = AccountService(db)
    svc.create_user("dup@example.com", "h", "A", "B")
    with pytest.raises(IntegrityError):
        svc.create_user("dup@example.com", "h", "C", "D")


def test_invalid_email(db):
    with pytest.raises(ValidationError):
        AccountService(db).create_user("nope", "h", "A", "B")


def test_deleting_role_in_use_fails_loudly(db, make_user):
    make_user(roles=("vendor",))
    svc = AccountService(db)
    with pytest.raises(IntegrityError):
        svc.delete_role("vendor")
    db.expire_all()
    assert db.query(Role).filter(Role.role_name == "vendor").count() == 1


def test_deleting_unused_role(db):
    svc = AccountService(db)
    svc.create_role("auditor")
    svc.delete_role("auditor")
    with pytest.raises(NotFoundError):
        svc.delete_role("auditor")


def test_single_default_address_per_kind(db, make_user):
    user = make_user()
    svc = AccountService(db)
    home = svc.add_address(user.id, "1 Main St", "Springfield", "US", default_shipping=True)
    office = svc.add_address(user.id, "2 Work Rd", "Springfield", "US", default_billing=True)
    assert svc.default_address(user.id, "shipping").id == home.id

    svc.set_default_address(office.id, "shipping")
    db.expire_all()
    assert svc.default_address(user.id, "shipping").id == office.id
    assert svc.default_address(user.id, "billing").id == office.id
    assert not db.get(type(home), home.id).is_default_shipping

    with pytest.raises(ValidationError):
        svc.set_default_address(office.id, "postal")


def test_checkout_rejects_foreign_address(db, make_user, make_product, make_cart, orders):
    owner = make_user()
    stranger = make_user()
    addr = AccountService(db).add_address(stranger.id, "9 Elm", "Shelbyville", "US")
    cart_id = make_cart([(make_product(), 1)], user=owner)
    with pytest.raises(ValidationError):
        orders.checkout(cart_id, shipping_address_id=addr.id)


def test_deleting_address_keeps_order(db, make_user, make_product, make_cart, orders):
    user = make_user()
    accounts = AccountService(db)
    addr = accounts.add_address(user.id, "1 Main St", "Springfield", "US")
    order = orders.checkout(
        make_cart([(make_product(), 1)], user=user),
        billing_address_id=addr.id,
        shipping_address_id=addr.id,
    ).order
    order_id = order.id
    assert order.shipping_address_id == addr.id

    accounts.delete_address(addr.id)
    db.expire_all()
    order = db.get(Order, order_id)
    assert order.shipping_address_id is None
    assert order.billing_address_id is None


def test_summary_keeps_orders_of_deleted_users(db, make_user, make_product, make_cart, orders):
    user = make_user(first_name="Grace", last_name="Hopper")
    p = make_product(price="3.00")
    orders.checkout(make_cart([(p, 1)], user=user))
    orders.checkout(make_cart([(p, 2)]))

    rows = orders.summaries()
    assert [(r.customer_name, r.status_name) for r in rows] == [
        ("Grace Hopper", "pending"),
        (None, "pending"),
    ]

    AccountService(db).delete_user(user.id)
    db.expire_all()
    rows = orders.summaries()
    assert len(rows) == 2
    assert rows[0].user_id is None and rows[0].customer_name is None
    assert rows[0].order_number.startswith("ORD-")


def test_restricted_catalog_deletes(db, make_product, make_cart, orders):
    catalog = CatalogService(db)
    p = make_product()
    supplier = catalog.create_supplier("Acme Supplies")
    catalog.link_supplier(p.id, supplier.id, cost_price="4.00")
    with pytest.raises(IntegrityError):
        catalog.delete_supplier(supplier.id)

    orders.checkout(make_cart([(p, 1)]))
    with pytest.raises(IntegrityError):
        catalog.delete_product(p.id)


def test_unreferenced_product_can_be_deleted(db, make_product):
    catalog = CatalogService(db)
    p = make_product()
    cat = catalog.create_category("Mugs", "mugs")
    catalog.add_to_category(p.id, cat.id)
    catalog.tag_product(p.id, "ceramic")
    catalog.add_image(p.id, "https://img.example.com/mug.png", is_primary=True)
    catalog.delete_product(p.id)
    with pytest.raises(NotFoundError):
        catalog.get_product(p.id)


def test_catalog_validation(db, make_product):
    catalog = CatalogService(db)
    with pytest.raises(ValidationError):
        catalog.create_product("NEG", "Negative", "-0.01")
    p = make_product()
    with pytest.raises(ValidationError):
        catalog.add_review(p.id, rating=6)
    review = catalog.add_review(p.id, rating=5, title="Great")
    assert review.is_approved is False


def test_reference_rows_get_generated_keys(db):
    rows = db.query(OrderStatus).order_by(OrderStatus.id).all()
    assert [r.status_name for r in rows] == ORDER_STATUS_NAMES
    assert all(isinstance(r.id, int) for r in rows)
    methods = db.query(PaymentMethod).order_by(PaymentMethod.id).all()
    assert [m.method_name for m in methods] == PAYMENT_METHOD_NAMES


def test_deleting_category_drops_links_only(db, make_product):
    catalog = CatalogService(db)
    p = make_product()
    parent = catalog.create_category("Kitchen", "kitchen")
    child = catalog.create_category("Mugs", "mugs", parent_id=parent.id)
    catalog.add_to_category(p.id, parent.id)
    catalog.add_to_category(p.id, child.id)

    catalog.delete_category(parent.id)
    db.expire_all()
    links = db.query(ProductCategory).filter(ProductCategory.product_id == p.id).all()
    assert [link.category_id for link in links] == [child.id]
    assert db.get(Category, child.id).parent_category_id is None
    assert catalog.get_product(p.id).sku == p.sku
    with pytest.raises(NotFoundError):
        catalog.delete_category(parent.id)


def test_deactivated_user_cannot_open_a_cart(db, make_user):
    user = make_user()
    AccountService(db).deactivate_user(user.id)
    with pytest.raises(ValidationError):
        CartService(db).get_or_create_cart(user_id=user.id)
