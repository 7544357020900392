# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Literal
from decimal import Decimal
from datetime import datetime


class ProductOut(BaseModel):
    """Catalog product (response)."""

    id: int
    name: str
    description: str | None = None
    price: Decimal
    image: str | None = None
    type: str | None = None
    occasions: List[str] | None = None
    featured: int = 0

    model_config = ConfigDict(from_attributes=True)


class ItemIn(BaseModel):
    """Adding a product to the cart."""

    product_id: int = Field(..., gt=0, description="Product ID (> 0)")
    quantity: int = Field(1, description="Quantity to add; clamped to 10 per line")


class QuantityIn(BaseModel):
    """Setting a cart line quantity. Zero or less removes the line."""

    quantity: int


class CartLineOut(BaseModel):
    id: str
    product_id: int
    name: str
    price: Decimal
    image: str | None = None
    quantity: int


class CartOut(BaseModel):
    cart_id: str | None = None
    user_id: str
    items: List[CartLineOut]
    item_count: int
    subtotal: Decimal
    shipping_fee: Decimal
    total: Decimal


class CustomerInfoIn(BaseModel):
    # left as plain strings so empty values reach the order builder and come
    # back as field-level messages
    name: str = ""
    email: str = ""


class ShippingAddressIn(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "Kazakhstan"


class CheckoutIn(BaseModel):
    customer: CustomerInfoIn
    shipping_address: ShippingAddressIn


class OrderItemOut(BaseModel):
    product_id: int
    product_name: str
    product_price: Decimal
    product_image: str | None = None
    quantity: int

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    user_id: str
    customer_name: str
    customer_email: str
    shipping_address: dict
    items: List[OrderItemOut]
    subtotal: Decimal
    shipping_fee: Decimal
    total: Decimal
    status: str
    payment_session_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderCreatedOut(BaseModel):
    order_id: str


class CheckoutSession(BaseModel):
    """What the processor hands back for a new session."""

    session_id: str
    url: str


class SessionStatus(BaseModel):
    """Authoritative state of a processor session."""

    session_id: str
    payment_status: str  # paid, unpaid, no_payment_required
    status: str | None = None  # open, complete, expired
    order_id: str | None = None
    url: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


class PaymentOut(BaseModel):
    """Result of starting (or resuming) payment for an order."""

    order_id: str
    status: str
    session_id: str | None = None
    url: str | None = None


class VerificationOut(BaseModel):
    order_id: str | None = None
    outcome: Literal["paid", "pending", "unverified"]
    status: str | None = None
    transitioned: bool = False
    message: str
