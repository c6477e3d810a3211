from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CheckoutIn(BaseModel):
    cart_id: int
    billing_address_id: Optional[int] = None
    shipping_address_id: Optional[int] = None
    coupon_code: Optional[str] = None
    shipping: Optional[Decimal] = Field(None, ge=0)
    tax: Optional[Decimal] = Field(None, ge=0)


class TransitionIn(BaseModel):
    status: str


class PaymentIn(BaseModel):
    method: str
    amount: Decimal = Field(..., ge=0)
    status: str = "success"
    provider_reference: Optional[str] = None


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    product_id: int
    sku: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    user_id: Optional[int] = None
    status_name: Optional[str] = None
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    billing_address_id: Optional[int] = None
    shipping_address_id: Optional[int] = None
    placed_at: datetime
    items: List[OrderItemOut] = []


class CheckoutOut(BaseModel):
    order: OrderOut
    coupon_applied: bool
    coupon_error: Optional[str] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_id: int
    amount: Decimal
    status: str
    provider_reference: Optional[str] = None


class OrderSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    order_id: int
    order_number: str
    user_id: Optional[int] = None
    customer_name: Optional[str] = None
    status_name: Optional[str] = None
    total: Decimal
    placed_at: datetime
