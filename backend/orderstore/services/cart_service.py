import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.cart import Cart
from orderstore.models.cart_item import CartItem
from orderstore.models.user import User
from orderstore.repositories.cart_repo import CartRepository
from orderstore.repositories.product_repo import ProductRepository
from orderstore.utils.money import ZERO, to_money
from orderstore.utils.transactions import integrity_guard, smart_transaction


class CartService:
    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)

    def get_cart(self, cart_id: int) -> Cart:
        c = self.cart_repo.get(cart_id)
        if not c:
            raise NotFoundError("Cart", cart_id)
        return c

    def _open_cart(self, cart_id: int) -> Cart:
        c = self.get_cart(cart_id)
        if c.checked_out:
            raise ConflictError(f"Cart {cart_id} has already been checked out")
        return c

    def get_or_create_cart(
        self, user_id: Optional[int] = None, session_token: Optional[str] = None
    ) -> Cart:
        """Open cart of a user or of a guest session; exactly one of the two."""
        if (user_id is None) == (session_token is None):
            raise ValidationError("A cart belongs to either a user or a session token")
        with integrity_guard("create cart"), smart_transaction(self.db):
            if user_id is not None:
                user = self.db.get(User, user_id)
                if not user:
                    raise NotFoundError("User", user_id)
                if not user.is_active:
                    raise ValidationError(f"User {user_id} is not active")
                c = self.cart_repo.get_by_user(user_id)
            else:
                c = self.cart_repo.get_by_session_token(session_token)
            if not c:
                c = self._create_or_reload(user_id, session_token)
        return c

    def _create_or_reload(self, user_id: Optional[int], session_token: Optional[str]) -> Cart:
        # a concurrent call may have opened the cart after our lookup
        try:
            with self.db.begin_nested():
                return self.cart_repo.create(user_id=user_id, session_token=session_token)
        except sa_exc.IntegrityError:
            if user_id is not None:
                c = self.cart_repo.get_by_user(user_id)
            else:
                c = self.cart_repo.get_by_session_token(session_token)
            if not c:
                raise
            return c

    def get_or_create_guest_cart(self, session_token: Optional[str] = None) -> Cart:
        return self.get_or_create_cart(session_token=session_token or uuid.uuid4().hex)

    def add_item(self, cart_id: int, product_id: int, qty: int = 1) -> CartItem:
        if qty <= 0:
            raise ValidationError("Quantity must be positive")
        with integrity_guard("add cart item"), smart_transaction(self.db):
            cart = self._open_cart(cart_id)
            product = self.product_repo.get(product_id)
            if not product:
                raise NotFoundError("Product", product_id)
            if not product.is_active:
                raise ValidationError(f"Product {product.sku} is not active")
            item = self.cart_repo.add_or_increment_item(cart, product_id, qty)
        return item

    def update_quantity(self, cart_id: int, product_id: int, qty: int) -> Optional[CartItem]:
        """Set a line's quantity; 0 removes the line."""
        if qty < 0:
            raise ValidationError("Quantity must be >= 0")
        with integrity_guard("update cart item"), smart_transaction(self.db):
            cart = self._open_cart(cart_id)
            item = self.cart_repo.find_item(cart, product_id)
            if not item:
                raise NotFoundError("Cart item", product_id)
            if qty == 0:
                self.cart_repo.remove_item(cart, item)
                return None
            item.quantity = qty
            self.db.flush()
        return item

    def remove_item(self, cart_id: int, product_id: int):
        with smart_transaction(self.db):
            cart = self._open_cart(cart_id)
            item = self.cart_repo.find_item(cart, product_id)
            if not item:
                raise NotFoundError("Cart item", product_id)
            self.cart_repo.remove_item(cart, item)

    def merge_guest_into_user(self, session_token: str, user_id: int) -> Cart:
        """Fold a guest cart into the user's open cart, e.g. after login."""
        with integrity_guard("merge carts"), smart_transaction(self.db):
            guest = self.cart_repo.get_by_session_token(session_token)
            if not guest:
                raise NotFoundError("Cart", session_token)
            user_cart = self.get_or_create_cart(user_id=user_id)
            merged = self.cart_repo.merge_guest_into_user(guest, user_cart)
        return merged

    def preview_subtotal(self, cart_id: int) -> Decimal:
        """Subtotal at current catalog prices; the order snapshot is taken at checkout."""
        cart = self.get_cart(cart_id)
        return to_money(
            sum((Decimal(it.product.price) * it.quantity for it in cart.items), ZERO)
        )
