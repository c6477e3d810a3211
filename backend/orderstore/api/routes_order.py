from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from orderstore.api.errors import to_http
from orderstore.db import get_db
from orderstore.errors import StoreError
from orderstore.schemas.order_schema import (
    CheckoutIn,
    CheckoutOut,
    OrderOut,
    OrderSummaryOut,
    PaymentIn,
    PaymentOut,
    TransitionIn,
)
from orderstore.services.order_service import OrderService
from orderstore.services.payment_service import PaymentService

router = APIRouter(tags=["orders"])


def _order_out(svc: OrderService, order_id: int) -> dict:
    return OrderOut.model_validate(svc.get_order(order_id)).model_dump(mode="json")


@router.post("/checkout", summary="Create order from cart (checkout)")
def checkout(payload: CheckoutIn, db: Session = Depends(get_db)):
    svc = OrderService(db)
    try:
        res = svc.checkout(
            payload.cart_id,
            billing_address_id=payload.billing_address_id,
            shipping_address_id=payload.shipping_address_id,
            coupon_code=payload.coupon_code,
            shipping=payload.shipping,
            tax=payload.tax,
        )
        return CheckoutOut(
            order=OrderOut.model_validate(res.order),
            coupon_applied=res.coupon_applied,
            coupon_error=res.coupon_error,
        ).model_dump(mode="json")
    except StoreError as e:
        raise to_http(e)


@router.get("/summaries", summary="Order summary read model")
def summaries(
    user_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    svc = OrderService(db)
    return [
        OrderSummaryOut.model_validate(s).model_dump(mode="json")
        for s in svc.summaries(user_id=user_id, limit=limit)
    ]


@router.get("/{order_id}", summary="Get order")
def get_order(order_id: int, db: Session = Depends(get_db)):
    svc = OrderService(db)
    try:
        return _order_out(svc, order_id)
    except StoreError as e:
        raise to_http(e)


@router.post("/{order_id}/status", summary="Transition order status")
def transition(order_id: int, payload: TransitionIn, db: Session = Depends(get_db)):
    svc = OrderService(db)
    try:
        svc.transition(order_id, payload.status)
        return _order_out(svc, order_id)
    except StoreError as e:
        raise to_http(e)


@router.post("/{order_id}/payments", summary="Record a payment")
def record_payment(order_id: int, payload: PaymentIn, db: Session = Depends(get_db)):
    svc = PaymentService(db)
    try:
        p = svc.record_payment(
            order_id,
            payload.method,
            payload.amount,
            status=payload.status,
            provider_reference=payload.provider_reference,
        )
        out = PaymentOut.model_validate(p).model_dump(mode="json")
        out["paid_amount"] = str(svc.paid_amount(order_id))
        return out
    except StoreError as e:
        raise to_http(e)
