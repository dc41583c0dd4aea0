# Orders/models.py
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, constr, model_validator

from freshcart.utils.sanitize import StrictSanitizedModel

OrderStatus = Literal[
    "pending_seller_approval",
    "approved",
    "processing",
    "ready_for_delivery",
    "out_for_delivery",
    "delivered",
    "cancelled",
]
PaymentMethod = Literal["COD", "Wallet"]
PaymentStatus = Literal["pending", "paid", "refunded"]

# Allowed status moves; anything else is a conflict
TRANSITIONS = {
    "pending_seller_approval": {"approved", "cancelled"},
    "approved": {"processing", "cancelled"},
    "processing": {"ready_for_delivery"},
    "ready_for_delivery": {"out_for_delivery"},
    "out_for_delivery": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}

CUSTOMER_CANCELLABLE = {"pending_seller_approval", "approved"}


class DeliveryAddress(StrictSanitizedModel):
    name: constr(min_length=2, max_length=60)
    phone: constr(pattern=r"^\+?[0-9]{7,15}$")
    address_line: constr(min_length=5, max_length=300)
    city: constr(min_length=2, max_length=60)
    pincode: constr(pattern=r"^[0-9]{6}$")
    landmark: Optional[constr(max_length=100)] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class PlaceOrder(StrictSanitizedModel):
    payment_method: PaymentMethod
    delivery_address: Optional[DeliveryAddress] = None
    address_id: Optional[constr(min_length=1, max_length=64)] = None
    expected_total: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def one_address(self):
        if (self.delivery_address is None) == (self.address_id is None):
            raise ValueError("Provide either delivery_address or address_id")
        return self


class CancelOrder(StrictSanitizedModel):
    reason: Optional[constr(max_length=300)] = None


class RejectOrder(StrictSanitizedModel):
    reason: constr(min_length=3, max_length=300)


class DeliverOrder(StrictSanitizedModel):
    otp: constr(pattern=r"^[0-9]{4}$")


class OrderItem(BaseModel):
    product_id: str
    product_name: str
    price: float
    quantity: int
    category: Optional[str] = None
    product_image: Optional[str] = None


class TimelineEntry(BaseModel):
    status: str
    note: Optional[str] = None
    changed_by: Optional[str] = None
    timestamp: str


class Order(BaseModel):
    id: str
    customer_uid: str
    seller_uid: str
    store_details: dict = {}
    items: List[OrderItem]
    subtotal: float
    delivery_fee: float
    total_amount: float
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "pending"
    status: OrderStatus = "pending_seller_approval"
    status_timeline: List[TimelineEntry] = []
    delivery_address: dict
    seller_approval_deadline: Optional[str] = None
    delivery_partner_uid: Optional[str] = None
    delivery_otp: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def view_for(self, role: str) -> dict:
        """The OTP is shown to the customer only; the partner collects it at the door."""
        data = self.model_dump()
        if role != "customer":
            data.pop("delivery_otp", None)
        return data
