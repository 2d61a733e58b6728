from datetime import datetime
from typing import Any, Dict, List, Optional

from ..enums import OrderStatus, PaymentMethod, PaymentStatus
from ..firestore_model import FirestoreDocument
from ..pydantic_compat import CamelModel, Field


class CustomerInfo(CamelModel):
    user_id: Optional[str] = None
    name: str = ""
    email: str = ""
    phone: str = ""


class DeliveryAddress(CamelModel):
    address: str = ""
    city: str = ""
    notes: str = ""


class ShippingAddress(CamelModel):
    name: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    phone: str = ""


class CheckoutCartItem(CamelModel):
    """A cart line as the storefront submits it at checkout."""

    id: Optional[str] = None
    product_id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: float
    quantity: int = 1
    image_url: Optional[str] = None
    image: Optional[str] = None
    seller_id: Optional[str] = None
    store_id: Optional[str] = None


class LineItem(CamelModel):
    """Gateway-facing line item."""

    name: str
    description: str = ""
    price: float
    quantity: int
    image_url: Optional[str] = None


class OrderItem(CamelModel):
    product_id: str
    name: str = ""
    price: float = 0
    quantity: int = 1
    thumbnail: str = ""
    image_url: Optional[str] = None
    seller_id: Optional[str] = None
    category: Optional[str] = None
    selected_variant: Optional[Dict[str, Any]] = None


class PaymentDetails(CamelModel):
    amount: Optional[float] = None
    currency: Optional[str] = None
    paid_at: Optional[Any] = None
    method: Optional[str] = None
    reference: Optional[str] = None
    line_items: Optional[List[Any]] = None


class Order(FirestoreDocument):
    """
    orders/{orderId}. Checkout orders use the generated ``order_id`` as the
    document ID and also store it as a field.
    """

    order_id: Optional[str] = None
    order_number: Optional[str] = None
    user_id: Optional[str] = None
    customer_id: Optional[str] = None
    store_id: Optional[str] = None
    seller_id: Optional[str] = None

    status: OrderStatus = OrderStatus.PENDING
    order_status: Optional[OrderStatus] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    session_status: Optional[str] = None

    items: List[OrderItem] = Field(default_factory=list)
    cart_items: List[CheckoutCartItem] = Field(default_factory=list)
    line_items: List[LineItem] = Field(default_factory=list)

    subtotal: Optional[float] = None
    shipping: Optional[float] = None
    tax: Optional[float] = None
    discount: Optional[float] = None
    total: Optional[float] = None
    total_amount: Optional[float] = None
    currency: str = "SLE"

    customer_info: Optional[CustomerInfo] = None
    delivery_address: Optional[DeliveryAddress] = None
    shipping_address: Optional[ShippingAddress] = None

    payment_method: PaymentMethod = PaymentMethod.MOBILE_MONEY
    checkout_session_id: Optional[str] = None
    checkout_url: Optional[str] = None
    payment_code_id: Optional[str] = None
    checkout_session_data: Optional[Dict[str, Any]] = None
    payment_details: Optional[PaymentDetails] = None
    tracking_number: Optional[str] = None

    expires_at: Optional[Any] = None
    estimated_delivery: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    class Settings:
        name = "orders"
