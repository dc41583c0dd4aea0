# Cart/models.py
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class CartItem(BaseModel):
    item_id: str
    product_id: str
    seller_uid: str
    product_name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    category: Optional[str] = None
    product_image: Optional[str] = None


class Cart(BaseModel):
    customer_uid: str
    items: List[CartItem] = []
    subtotal: float = 0
    delivery_fee: float = 0
    total_amount: float = 0
    item_count: int = 0
    free_delivery_gap: float = 0
    updated_at: Optional[str] = None


class AddToCart(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: str = Field(..., min_length=1, max_length=128)
    seller_uid: str = Field(..., min_length=1, max_length=128)
    quantity: int = Field(1, ge=1, le=100)


class UpdateCartItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    quantity: int = Field(..., ge=1, le=100)
