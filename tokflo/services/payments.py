"""
Payment, payout, transaction and webhook records, seller balances and the
store-wide payment configuration.
"""
import logging
from typing import Any, List, Optional, Union

from ..enums import OrderByDirection, OrderStatus, PaymentStatus, PayoutStatus
from ..exceptions import NotFoundError, ValidationError
from ..firestore_model import utcnow
from ..models import Order, Payment, Payout, SellerProfile, StoreConfig, Transaction, WebhookEvent

logger = logging.getLogger(__name__)

# Seller share of each sale after the platform fee
SELLER_SHARE = 0.9
STORE_CONFIG_ID = "main"


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
async def create_payment(payment: Payment) -> Payment:
    payment.status = PaymentStatus.PENDING
    return await payment.save()


async def get_payment(payment_id: str) -> Payment:
    payment = await Payment.get(payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


async def get_payment_by_order_id(order_id: str) -> Optional[Payment]:
    return await Payment.find_one(filters=[Payment.order_id == order_id])


async def update_payment_status(payment_id: str, status: Union[PaymentStatus, str], **extra: Any) -> Payment:
    payment = await get_payment(payment_id)
    status = PaymentStatus(status)
    values = {"status": status, **extra}
    if status == PaymentStatus.COMPLETED:
        values["completed_at"] = utcnow()
    return await payment.apply(values=values)


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------
async def create_payout_record(payout: Payout) -> Payout:
    """Store a payout; a set ``payout_id`` becomes the document ID."""
    payout.status = PayoutStatus.PENDING
    if payout.id is None and payout.payout_id:
        payout.id = payout.payout_id
    return await payout.save()


async def update_payout_status(payout_id: str, status: Union[PayoutStatus, str], **extra: Any) -> Payout:
    payout = await Payout.get(payout_id)
    if payout is None:
        raise NotFoundError(f"Payout {payout_id} not found")
    status = PayoutStatus(status)
    values = {"status": status, **extra}
    if status == PayoutStatus.COMPLETED:
        values["completed_at"] = utcnow()
    return await payout.apply(values=values)


async def get_seller_payouts(seller_id: str, limit: int = 10) -> List[Payout]:
    return await Payout.find_all(
        filters=[Payout.seller_id == seller_id],
        order_by=(Payout.created_at, OrderByDirection.DESCENDING),
        limit=limit,
    )


async def calculate_seller_balance(seller_id: str) -> float:
    """
    Seller's share of every paid order line they sold, minus payouts that
    are pending or completed. Never negative.
    """
    earnings = 0.0
    async for order in Order.find(filters=[Order.status == OrderStatus.PAID.value]):
        for item in order.cart_items:
            if item.seller_id == seller_id:
                earnings += item.price * item.quantity * SELLER_SHARE

    paid_out = 0.0
    payouts = Payout.find(filters=[
        Payout.seller_id == seller_id,
        Payout.status.in_([PayoutStatus.PENDING.value, PayoutStatus.COMPLETED.value]),
    ])
    async for payout in payouts:
        paid_out += payout.amount

    return max(0.0, round(earnings - paid_out, 2))


# ---------------------------------------------------------------------------
# Transactions and webhooks
# ---------------------------------------------------------------------------
async def create_transaction(transaction: Transaction) -> Transaction:
    return await transaction.save()


async def log_webhook(event: WebhookEvent) -> WebhookEvent:
    event.processed = False
    event.received_at = utcnow()
    return await event.save()


async def mark_webhook_processed(webhook_id: str, success: bool = True, error: Optional[str] = None) -> None:
    await WebhookEvent.patch(
        webhook_id,
        values={"processed": success, "processed_at": utcnow(), "error": error},
    )


# ---------------------------------------------------------------------------
# Seller profiles
# ---------------------------------------------------------------------------
async def get_seller_profile(seller_id: str) -> Optional[SellerProfile]:
    return await SellerProfile.get(seller_id)


async def update_seller_balance(seller_id: str, amount: float, kind: str = "add") -> float:
    """Add to or subtract from ``stats.availableBalance``; returns the new balance."""
    if kind not in ("add", "subtract"):
        raise ValidationError("Invalid balance update type")
    profile = await get_seller_profile(seller_id)
    if profile is None:
        raise NotFoundError("Seller profile not found")

    current = profile.stats.available_balance or 0
    balance = current + amount if kind == "add" else max(0, current - amount)
    await SellerProfile.patch(seller_id, values={"stats.available_balance": balance})
    profile.stats.available_balance = balance
    return balance


# ---------------------------------------------------------------------------
# Store config
# ---------------------------------------------------------------------------
async def get_store_config() -> StoreConfig:
    """``storeConfig/main``, or the built-in defaults when it was never written."""
    config = await StoreConfig.get(STORE_CONFIG_ID)
    return config if config is not None else StoreConfig(id=STORE_CONFIG_ID)
