from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CartCreateIn(BaseModel):
    user_id: Optional[int] = None
    session_token: Optional[str] = None


class CartItemIn(BaseModel):
    product_id: int
    qty: int = Field(1, gt=0)


class CartQuantityIn(BaseModel):
    qty: int = Field(..., ge=0)


class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: int
    quantity: int


class CartOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: Optional[int] = None
    session_token: Optional[str] = None
    checked_out: bool
    converted_order_id: Optional[int] = None
    items: List[CartItemOut] = []
