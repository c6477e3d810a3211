from typing import Optional

from sqlalchemy.orm import Session

from orderstore.models.cart import Cart
from orderstore.models.cart_item import CartItem


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, cart_id: int) -> Optional[Cart]:
        return self.db.get(Cart, cart_id)

    def get_by_session_token(self, session_token: str) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(Cart.session_token == session_token, Cart.checked_out == False)  # noqa: E712
            .first()
        )

    def get_by_user(self, user_id: int) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(Cart.user_id == user_id, Cart.checked_out == False)  # noqa: E712
            .order_by(Cart.id.desc())
            .first()
        )

    def create(self, user_id: Optional[int] = None, session_token: Optional[str] = None) -> Cart:
        c = Cart(user_id=user_id, session_token=session_token)
        self.db.add(c)
        self.db.flush()
        return c

    def find_item(self, cart: Cart, product_id: int) -> Optional[CartItem]:
        return next((it for it in cart.items if it.product_id == product_id), None)

    def add_or_increment_item(self, cart: Cart, product_id: int, qty: int) -> CartItem:
        item = self.find_item(cart, product_id)
        if item:
            item.quantity += qty
        else:
            item = CartItem(cart_id=cart.id, product_id=product_id, quantity=qty)
            cart.items.append(item)
        self.db.flush()
        return item

    def remove_item(self, cart: Cart, item: CartItem):
        cart.items.remove(item)
        self.db.flush()

    def mark_consumed(self, cart_id: int) -> bool:
        """
        Flip checked_out from false to true. Returns False when another
        checkout got there first.
        """
        updated = (
            self.db.query(Cart)
            .filter(Cart.id == cart_id, Cart.checked_out == False)  # noqa: E712
            .update({Cart.checked_out: True}, synchronize_session=False)
        )
        return updated == 1

    def merge_guest_into_user(self, guest_cart: Cart, user_cart: Cart) -> Cart:
        # naive merge: add quantities
        for git in list(guest_cart.items):
            found = self.find_item(user_cart, git.product_id)
            if found:
                found.quantity += git.quantity
            else:
                user_cart.items.append(
                    CartItem(product_id=git.product_id, quantity=git.quantity)
                )
        self.db.delete(guest_cart)
        self.db.flush()
        return user_cart
