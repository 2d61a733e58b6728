from datetime import datetime
from typing import Any, Dict, List, Optional

from ..enums import PaymentMethod, PaymentStatus, PayoutStatus, TransactionType
from ..firestore_model import FirestoreDocument
from ..pydantic_compat import CamelModel, Field
from .orders import LineItem


class Payment(FirestoreDocument):
    order_id: str
    user_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    session_url: Optional[str] = None
    session_status: Optional[str] = None
    amount: float = 0
    currency: str = "SLE"
    payment_method: PaymentMethod = PaymentMethod.MOBILE_MONEY
    status: PaymentStatus = PaymentStatus.PENDING
    line_items: List[LineItem] = Field(default_factory=list)
    monime_response: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[Any] = None

    class Settings:
        name = "payments"


class PayoutDestination(CamelModel):
    type: str = "mobile_money"
    account_number: str = ""
    account_name: str = ""
    provider: str = ""


class SellerInfo(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class Payout(FirestoreDocument):
    """payouts/{payoutId}; ``id`` doubles as ``payout_id``."""

    payout_id: Optional[str] = None
    seller_id: str
    seller_info: Optional[SellerInfo] = None
    amount: float
    currency: Optional[str] = None
    status: PayoutStatus = PayoutStatus.PENDING
    monime_payout_id: Optional[str] = None
    monime_reference: Optional[str] = None
    payout_account: Optional[Any] = None
    description: str = ""
    order_ids: List[str] = Field(default_factory=list)
    monime_response: Optional[Dict[str, Any]] = None
    processed_at: Optional[Any] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Settings:
        name = "payouts"


class SellerPayoutSummary(FirestoreDocument):
    """sellerPayouts/{sellerId}: running payout totals per seller."""

    seller_id: str
    total_payouts: float = 0
    payout_count: int = 0
    last_payout_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "sellerPayouts"


class Transaction(FirestoreDocument):
    type: TransactionType
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    payout_id: Optional[str] = None
    user_id: Optional[str] = None
    amount: float = 0
    currency: str = "SLE"
    status: Optional[str] = None
    description: str = ""
    monime_id: Optional[str] = None
    monime_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "transactions"


class WebhookEvent(FirestoreDocument):
    event: str
    source: str = "monime"
    payload: Dict[str, Any] = Field(default_factory=dict)
    signature: Optional[str] = None
    processed: bool = False
    processed_at: Optional[datetime] = None
    error: Optional[str] = None
    order_id: Optional[str] = None
    payout_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    received_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Settings:
        name = "webhooks"


class PayoutSettings(CamelModel):
    method: str = "mobile_money"
    account_number: str = ""
    account_name: str = ""
    provider: str = ""
    minimum_payout: float = 0


class SellerStats(CamelModel):
    total_sales: float = 0
    total_orders: int = 0
    total_payouts: float = 0
    pending_balance: float = 0
    available_balance: float = 0


class SellerProfile(FirestoreDocument):
    """sellerProfiles/{uid}"""

    business_name: str = ""
    business_type: str = ""
    tax_id: str = ""
    payout_settings: PayoutSettings = Field(default_factory=PayoutSettings)
    stats: SellerStats = Field(default_factory=SellerStats)
    status: str = "active"
    verification_status: str = "pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    class Settings:
        name = "sellerProfiles"


class ShippingRates(CamelModel):
    free_shipping_threshold: float = 100
    standard_rate: float = 10
    express_rate: float = 20


class PaymentSettings(CamelModel):
    enabled_methods: List[PaymentMethod] = Field(
        default_factory=lambda: [PaymentMethod.MOBILE_MONEY, PaymentMethod.CARD]
    )
    currency: str = "SLE"
    tax_rate: float = 0.15
    shipping_rates: ShippingRates = Field(default_factory=ShippingRates)


class StoreConfig(FirestoreDocument):
    """storeConfig/main"""

    payment_settings: PaymentSettings = Field(default_factory=PaymentSettings)
    monime_config: Optional[Dict[str, Any]] = None
    business_info: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "storeConfig"
