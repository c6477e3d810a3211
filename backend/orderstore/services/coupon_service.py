from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from orderstore.errors import ConflictError, NotFoundError, ValidationError
from orderstore.models.coupon import DISCOUNT_TYPES, Coupon, OrderCoupon
from orderstore.utils.logging import get_logger
from orderstore.utils.money import ZERO, to_money
from orderstore.utils.transactions import integrity_guard, smart_transaction

log = get_logger("orderstore.coupons", "COUPONS")


@dataclass(frozen=True)
class CouponCheck:
    applicable: bool
    discount: Decimal
    reason: Optional[str] = None


def evaluate(coupon: Coupon, today: date, subtotal: Decimal) -> CouponCheck:
    """
    Decide whether `coupon` applies to an order of `subtotal` on `today`.

    Pure: reads the coupon row as given and never touches used_count.
    """
    if not coupon.is_active:
        return CouponCheck(False, ZERO, "Coupon is not active")
    if coupon.valid_from is not None and today < coupon.valid_from:
        return CouponCheck(False, ZERO, "Coupon is not valid yet")
    if coupon.valid_to is not None and today > coupon.valid_to:
        return CouponCheck(False, ZERO, "Coupon has expired")
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        return CouponCheck(False, ZERO, "Coupon usage limit reached")

    subtotal = to_money(subtotal)
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == "percent":
        discount = to_money(subtotal * value / Decimal(100))
    else:
        discount = to_money(min(value, subtotal))
    return CouponCheck(True, min(discount, subtotal))


class CouponService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> Coupon:
        c = self.db.query(Coupon).filter(Coupon.code == code).first()
        if not c:
            raise NotFoundError("Coupon", code)
        return c

    def create_coupon(
        self,
        code: str,
        discount_type: str,
        discount_value,
        max_uses: Optional[int] = None,
        valid_from: Optional[date] = None,
        valid_to: Optional[date] = None,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Coupon:
        if not code:
            raise ValidationError("Coupon code is required")
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationError(f"Unknown discount type: {discount_type}")
        try:
            value = to_money(discount_value)
        except ValueError as e:
            raise ValidationError(str(e))
        if value < 0:
            raise ValidationError("Discount value must be >= 0")
        if discount_type == "percent" and value > 100:
            raise ValidationError("Percent discount cannot exceed 100")
        if max_uses is not None and max_uses < 0:
            raise ValidationError("max_uses must be >= 0")
        if valid_from and valid_to and valid_from > valid_to:
            raise ValidationError("valid_from must not be after valid_to")

        with integrity_guard("create coupon"), smart_transaction(self.db):
            c = Coupon(
                code=code,
                description=description,
                discount_type=discount_type,
                discount_value=value,
                max_uses=max_uses,
                used_count=0,
                valid_from=valid_from,
                valid_to=valid_to,
                is_active=is_active,
            )
            self.db.add(c)
            self.db.flush()
        return c

    def check(self, code: str, subtotal, today: Optional[date] = None) -> CouponCheck:
        """Look up and evaluate a coupon without redeeming it."""
        coupon = self.get_by_code(code)
        return evaluate(coupon, today or date.today(), subtotal)

    def redeem(self, coupon: Coupon, order_id: int):
        """
        Count one use of `coupon` for `order_id`; inside checkout this joins
        the checkout transaction.

        The usage cap is re-checked in the UPDATE itself, so two checkouts
        racing for the last use cannot both get it.
        """
        code = coupon.code
        with integrity_guard("redeem coupon"), smart_transaction(self.db):
            updated = (
                self.db.query(Coupon)
                .filter(
                    Coupon.id == coupon.id,
                    Coupon.is_active == True,  # noqa: E712
                    or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses),
                )
                .update({Coupon.used_count: Coupon.used_count + 1}, synchronize_session=False)
            )
            self.db.expire(coupon)
            if updated != 1:
                raise ConflictError(f"Coupon {code} is no longer available")
            self.db.add(OrderCoupon(order_id=order_id, coupon_id=coupon.id))
            self.db.flush()
        log.info(f"redeemed coupon={code} order={order_id}")

    def deactivate(self, code: str) -> Coupon:
        with smart_transaction(self.db):
            c = self.get_by_code(code)
            c.is_active = False
            self.db.flush()
        return c
