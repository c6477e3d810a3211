from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orderstore.api.errors import to_http
from orderstore.db import get_db
from orderstore.errors import StoreError
from orderstore.schemas.cart_schema import CartCreateIn, CartItemIn, CartOut, CartQuantityIn
from orderstore.services.cart_service import CartService

router = APIRouter(prefix="/api/carts", tags=["cart"])


def _out(svc: CartService, cart_id: int) -> dict:
    svc.db.expire_all()
    return CartOut.model_validate(svc.get_cart(cart_id)).model_dump()


@router.post("", summary="Get or create the open cart of a user or guest session")
def create_cart(payload: CartCreateIn, db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        if payload.user_id is None and payload.session_token is None:
            cart = svc.get_or_create_guest_cart()
        else:
            cart = svc.get_or_create_cart(payload.user_id, payload.session_token)
        return _out(svc, cart.id)
    except StoreError as e:
        raise to_http(e)


@router.get("/{cart_id}", summary="Get cart")
def get_cart(cart_id: int, db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        out = _out(svc, cart_id)
        out["subtotal"] = str(svc.preview_subtotal(cart_id))
        return out
    except StoreError as e:
        raise to_http(e)


@router.post("/{cart_id}/items", summary="Add item to cart")
def add_item(cart_id: int, payload: CartItemIn, db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        svc.add_item(cart_id, payload.product_id, payload.qty)
        return _out(svc, cart_id)
    except StoreError as e:
        raise to_http(e)


@router.patch("/{cart_id}/items/{product_id}", summary="Set item quantity (0 removes)")
def update_item(cart_id: int, product_id: int, payload: CartQuantityIn, db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        svc.update_quantity(cart_id, product_id, payload.qty)
        return _out(svc, cart_id)
    except StoreError as e:
        raise to_http(e)


@router.delete("/{cart_id}/items/{product_id}", summary="Remove item")
def remove_item(cart_id: int, product_id: int, db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        svc.remove_item(cart_id, product_id)
        return _out(svc, cart_id)
    except StoreError as e:
        raise to_http(e)
