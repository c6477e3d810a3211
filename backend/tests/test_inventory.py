import pytest

from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.inventory import Inventory
from orderstore.services.inventory_service import InventoryService


def _inv(db, product_id):
    db.expire_all()
    return db.get(Inventory, product_id)


def test_reserve_and_release(db, make_product):
    p = make_product(stock=5)
    svc = InventoryService(db)
    svc.reserve(p.id, 3)
    inv = _inv(db, p.id)
    assert (inv.quantity, inv.reserved, inv.available) == (5, 3, 2)

    svc.release(p.id, 2)
    inv = _inv(db, p.id)
    assert (inv.quantity, inv.reserved) == (5, 1)


def test_reserve_more_than_available_is_rejected(db, make_product):
    p = make_product(stock=2)
    svc = InventoryService(db)
    svc.reserve(p.id, 2)
    with pytest.raises(ConflictError):
        svc.reserve(p.id, 1)
    inv = _inv(db, p.id)
    assert inv.reserved == 2
    assert 0 <= inv.reserved <= inv.quantity


def test_reserve_without_inventory_record(db, make_product):
    p = make_product(stock=None)
    svc = InventoryService(db)
    assert svc.available(p.id) == 0
    with pytest.raises(ConflictError):
        svc.reserve(p.id, 1)


def test_release_more_than_reserved_is_rejected(db, make_product):
    p = make_product(stock=5)
    svc = InventoryService(db)
    svc.reserve(p.id, 1)
    with pytest.raises(ConflictError):
        svc.release(p.id, 2)
    assert _inv(db, p.id).reserved == 1


def test_consume_moves_quantity_and_reserved_together(db, make_product):
    p = make_product(stock=5)
    svc = InventoryService(db)
    svc.reserve(p.id, 2)
    svc.consume(p.id, 2)
    inv = _inv(db, p.id)
    assert (inv.quantity, inv.reserved) == (3, 0)


def test_consume_requires_reservation(db, make_product):
    p = make_product(stock=5)
    with pytest.raises(ConflictError):
        InventoryService(db).consume(p.id, 1)
    assert _inv(db, p.id).quantity == 5


@pytest.mark.parametrize("qty", [0, -1])
def test_non_positive_quantities_are_invalid(db, make_product, qty):
    p = make_product(stock=5)
    with pytest.raises(ValidationError):
        InventoryService(db).reserve(p.id, qty)


def test_restock_creates_missing_record(db, make_product):
    p = make_product(stock=None)
    svc = InventoryService(db)
    inv = svc.restock(p.id, 4)
    assert inv.quantity == 4
    assert inv.last_restock is not None

    inv = svc.restock(p.id, 6)
    assert inv.quantity == 10


def test_restock_unknown_product(db):
    with pytest.raises(NotFoundError):
        InventoryService(db).restock(9999, 1)


def test_below_reorder_threshold(db, make_product):
    low = make_product(stock=3)
    high = make_product(stock=50)
    svc = InventoryService(db)
    svc.set_reorder_threshold(low.id, 5)
    svc.set_reorder_threshold(high.id, 5)
    assert [i.product_id for i in svc.below_reorder_threshold()] == [low.id]

    # reservations count against availability
    svc.reserve(high.id, 46)
    assert sorted(i.product_id for i in svc.below_reorder_threshold()) == [low.id, high.id]
