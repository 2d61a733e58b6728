"""
Checkout, payment verification, gateway webhooks and seller payouts.

The gateway is called before anything is written, so a failed session
leaves no order behind. A failed order write after a successful session
is not compensated.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..enums import OrderStatus, PaymentMethod, PaymentStatus, PayoutStatus, TransactionType
from ..exceptions import NotFoundError, SignatureError, ValidationError
from ..firestore_model import utcnow
from ..models import (
    CheckoutCartItem,
    CustomerInfo,
    DeliveryAddress,
    LineItem,
    Order,
    PaymentDetails,
    Payout,
    SellerInfo,
    SellerPayoutSummary,
    Transaction,
    User,
    WebhookEvent,
)
from ..monime import MonimeClient
from ..pydantic_compat import CamelModel, Field, model_dump_compat
from .orders import generate_order_id, generate_order_number, get_order, now_ms, random_base36
from .payments import (
    calculate_seller_balance,
    create_payout_record,
    create_transaction,
    log_webhook,
    mark_webhook_processed,
)

logger = logging.getLogger(__name__)

# Gateway session status -> (order status, message shown to the buyer)
SESSION_STATUS_MAP: Dict[str, Tuple[OrderStatus, str]] = {
    "completed": (OrderStatus.PAID, "Payment completed successfully"),
    "processing": (OrderStatus.PROCESSING_PAYMENT, "Payment is being processed"),
    "failed": (OrderStatus.PAYMENT_FAILED, "Payment failed"),
    "cancelled": (OrderStatus.CANCELLED, "Payment was cancelled"),
    "expired": (OrderStatus.EXPIRED, "Payment link has expired"),
}
PENDING_STATUS = (OrderStatus.PENDING_PAYMENT, "Payment is pending")


class CheckoutRequest(CamelModel):
    cart_items: List[CheckoutCartItem] = Field(default_factory=list)
    total_amount: Optional[float] = None
    customer_info: Optional[CustomerInfo] = None
    delivery_address: Optional[DeliveryAddress] = None
    payment_method: PaymentMethod = PaymentMethod.MOBILE_MONEY

    def check(self) -> None:
        if not self.cart_items:
            raise ValidationError("cartItems array is required and cannot be empty")
        if self.customer_info is None or not self.customer_info.email or not self.customer_info.phone:
            raise ValidationError("Customer email and phone are required")


class PayoutRequest(CamelModel):
    seller_id: Optional[str] = None
    amount: Optional[float] = None
    payout_account: Optional[Any] = None
    description: Optional[str] = None
    order_ids: List[str] = Field(default_factory=list)


def _payment_status(raw: Optional[str]) -> PaymentStatus:
    try:
        return PaymentStatus(raw)
    except ValueError:
        return PaymentStatus.PENDING


def build_line_items(cart_items: List[CheckoutCartItem]) -> List[LineItem]:
    line_items = []
    for item in cart_items:
        name = item.name or item.title or "Product"
        line_items.append(LineItem(
            name=name,
            description=item.description or f"{name} - {item.category or 'Product'}",
            price=float(item.price),
            quantity=int(item.quantity),
            image_url=item.image_url or item.image or None,
        ))
    return line_items


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
async def create_checkout(
    request: CheckoutRequest,
    gateway: MonimeClient,
    base_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Open a checkout session for the cart and store the pending order
    under the generated order ID.
    """
    request.check()
    customer = request.customer_info
    base_url = (base_url or gateway.config.public_base_url).rstrip("/")

    order_id = generate_order_id()
    order_number = generate_order_number()
    line_items = build_line_items(request.cart_items)
    total_amount = (
        request.total_amount
        if request.total_amount is not None
        else round(sum(item.price * item.quantity for item in line_items), 2)
    )

    metadata = {
        "orderId": order_id,
        "orderNumber": order_number,
        "customerName": customer.name,
        "customerId": customer.user_id,
        "itemCount": len(request.cart_items),
        "paymentMethod": request.payment_method,
        "deliveryAddress": (
            json.dumps(model_dump_compat(request.delivery_address, by_alias=True))
            if request.delivery_address else None
        ),
        "cartItems": json.dumps([
            {
                "productId": item.id or item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "price": item.price,
                "sellerId": item.seller_id,
                "category": item.category,
            }
            for item in request.cart_items
        ]),
    }

    session = await gateway.create_checkout_session(
        line_items=line_items,
        order_id=order_id,
        order_number=order_number,
        customer_email=customer.email,
        customer_phone=customer.phone,
        customer_name=customer.name,
        description=f"TokFlo Store - Order {order_number} ({len(request.cart_items)} items)",
        metadata=metadata,
        success_url=f"{base_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}&order_id={order_id}",
        cancel_url=f"{base_url}/payment/cancel?order_id={order_id}",
    )

    order = Order(
        id=order_id,
        order_id=order_id,
        order_number=order_number,
        user_id=customer.user_id,
        customer_id=customer.user_id,
        customer_info=customer,
        cart_items=request.cart_items,
        line_items=line_items,
        total_amount=total_amount,
        currency=session.get("currency") or gateway.config.currency,
        delivery_address=request.delivery_address,
        payment_method=request.payment_method,
        checkout_session_id=session.get("id"),
        checkout_url=session.get("url"),
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        order_status=OrderStatus.PENDING_PAYMENT,
        expires_at=session.get("expires_at"),
    )
    await order.put()

    logger.info(
        f"Checkout session created for order {order_id}: session={order.checkout_session_id} "
        f"amount={total_amount} items={len(request.cart_items)}"
    )
    return {
        "success": True,
        "orderId": order_id,
        "orderNumber": order_number,
        "sessionId": order.checkout_session_id,
        "checkoutUrl": order.checkout_url,
        "amount": total_amount,
        "currency": order.currency,
        "expiresAt": order.expires_at,
        "lineItems": [model_dump_compat(item, by_alias=True) for item in line_items],
        "message": "Checkout session created successfully",
    }


def _session_payment_details(session: Dict[str, Any]) -> PaymentDetails:
    return PaymentDetails(
        amount=session.get("amount_total"),
        currency=session.get("currency"),
        paid_at=session.get("paid_at"),
        method=(session.get("payment_method_types") or [None])[0],
        reference=session.get("payment_intent"),
        line_items=session.get("line_items"),
    )


def _code_payment_details(payment: Dict[str, Any]) -> PaymentDetails:
    return PaymentDetails(
        amount=payment.get("amount"),
        currency=payment.get("currency"),
        paid_at=payment.get("paid_at"),
        method=payment.get("payment_method"),
        reference=payment.get("reference"),
    )


async def verify_payment_status(
    gateway: MonimeClient,
    order_id: Optional[str] = None,
    checkout_session_id: Optional[str] = None,
    payment_code_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Ask the gateway for the payment status and bring the order in line.

    Checkout sessions take precedence; orders opened before them carry a
    ``paymentCodeId`` and are looked up through the payment-code call.
    """
    if not order_id and not checkout_session_id and not payment_code_id:
        raise ValidationError("Either orderId, paymentCodeId or checkoutSessionId is required")

    order = await get_order(order_id) if order_id else None
    session_id = checkout_session_id or (order.checkout_session_id if order else None)
    code_id = None
    if session_id:
        payment = await gateway.get_checkout_session(session_id)
        details = _session_payment_details(payment)
    else:
        code_id = payment_code_id or (order.payment_code_id if order else None)
        if not code_id:
            raise ValidationError("Unable to determine checkout session ID or payment code ID")
        payment = await gateway.get_payment_status(code_id)
        details = _code_payment_details(payment)

    raw_status = payment.get("status")
    order_status, message = SESSION_STATUS_MAP.get(raw_status, PENDING_STATUS)

    if order is not None:
        values = {
            "status": order_status,
            "payment_status": _payment_status(raw_status),
            "payment_details": details,
        }
        if session_id:
            values["session_status"] = raw_status
            values["checkout_session_id"] = session_id
        if raw_status == "completed":
            values["paid_at"] = utcnow()
        await order.apply(values=values)
        logger.info(
            f"Order {order.id} status updated to {order_status.value} "
            f"(status {raw_status} session={session_id} code={code_id})"
        )

    payment_details = model_dump_compat(details, by_alias=True)
    payment_details["expiresAt"] = payment.get("expires_at")
    result = {
        "success": True,
        "orderId": order_id or (payment.get("metadata") or {}).get("orderId"),
        "paymentStatus": raw_status,
        "orderStatus": order_status.value,
        "statusMessage": message,
        "metadata": payment.get("metadata"),
        "paymentDetails": payment_details,
    }
    if session_id:
        result["checkoutSessionId"] = session_id
        result["sessionStatus"] = raw_status
    else:
        result["paymentCodeId"] = code_id
    return result


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
async def _order_from_metadata(data: Dict[str, Any]) -> Optional[Order]:
    order_id = (data.get("metadata") or {}).get("orderId")
    if not order_id:
        logger.warning("Order ID not found in webhook metadata")
        return None
    order = await Order.get(order_id)
    if order is None:
        logger.warning(f"Order not found: {order_id}")
    return order


async def _handle_checkout_session(data: Dict[str, Any]) -> None:
    order = await _order_from_metadata(data)
    if order is None:
        return

    status = data.get("status")
    order_status, payment_status = {
        "completed": (OrderStatus.PAID, PaymentStatus.COMPLETED),
        "expired": (OrderStatus.EXPIRED, PaymentStatus.EXPIRED),
        "cancelled": (OrderStatus.CANCELLED, PaymentStatus.CANCELLED),
    }.get(status, (OrderStatus.PENDING_PAYMENT, PaymentStatus.PENDING))

    values = {
        "status": order_status,
        "payment_status": payment_status,
        "session_status": status,
        "checkout_session_data": {
            "sessionId": data.get("id"),
            "status": status,
            "lineItems": data.get("line_items"),
            "completedAt": data.get("completed_at"),
            "expiresAt": data.get("expires_at"),
        },
    }
    if status == "completed":
        values["paid_at"] = utcnow()
    previous = order.status
    await order.apply(values=values)
    logger.info(f"Order {order.id} updated by checkout webhook: {previous} -> {order_status.value}")


async def _handle_payment(data: Dict[str, Any]) -> None:
    order = await _order_from_metadata(data)
    if order is None:
        return

    status = data.get("status")
    order_status = {
        "completed": OrderStatus.PAID,
        "failed": OrderStatus.PAYMENT_FAILED,
        "cancelled": OrderStatus.CANCELLED,
        "expired": OrderStatus.EXPIRED,
    }.get(status, OrderStatus.PENDING_PAYMENT)

    values = {
        "status": order_status,
        "payment_status": _payment_status(status),
        "payment_details": PaymentDetails(
            amount=data.get("amount"),
            currency=data.get("currency"),
            paid_at=data.get("paid_at"),
            method=data.get("payment_method"),
            reference=data.get("reference"),
        ),
    }
    if status == "completed":
        values["paid_at"] = utcnow()
    await order.apply(values=values)
    logger.info(f"Order {order.id} updated by payment webhook: {order_status.value}")


async def _handle_payout(data: Dict[str, Any]) -> None:
    metadata = data.get("metadata") or {}
    if not metadata.get("sellerId"):
        logger.warning("Seller ID not found in payout metadata")
        return

    payout = None
    if metadata.get("payoutId"):
        payout = await Payout.get(metadata["payoutId"])
    if payout is None and data.get("id"):
        payout = await Payout.find_one(filters=[Payout.monime_payout_id == data["id"]])
    if payout is None:
        logger.warning(f"Payout not found for gateway payout {data.get('id')}")
        return

    try:
        status = PayoutStatus(data.get("status"))
    except ValueError:
        status = PayoutStatus.PROCESSING
    values = {"status": status, "processed_at": data.get("processed_at")}
    if status == PayoutStatus.COMPLETED:
        values["completed_at"] = utcnow()
    await payout.apply(values=values)
    logger.info(f"Payout {payout.id} updated by webhook: {status.value}")


WEBHOOK_HANDLERS = {
    "checkout_session.completed": _handle_checkout_session,
    "checkout_session.expired": _handle_checkout_session,
    "checkout_session.cancelled": _handle_checkout_session,
    "payment.completed": _handle_payment,
    "payment.failed": _handle_payment,
    "payment.cancelled": _handle_payment,
    "payment.expired": _handle_payment,
    "payout.completed": _handle_payout,
    "payout.failed": _handle_payout,
}


async def process_webhook(
    raw_body: Union[str, bytes],
    signature: Optional[str],
    gateway: MonimeClient,
) -> Dict[str, Any]:
    """
    Verify, log and apply one gateway event. Unknown events are logged and
    acknowledged.
    """
    if not signature:
        raise ValidationError("Webhook signature is required")
    if not gateway.verify_webhook_signature(raw_body, signature):
        raise SignatureError("Webhook signature verification failed")

    try:
        payload = json.loads(raw_body)
    except ValueError as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    event = payload.get("event") or "unknown"
    data = payload.get("data") or {}
    if not isinstance(event, str):
        raise ValidationError("Webhook event must be a string")
    if not isinstance(data, dict):
        raise ValidationError("Webhook data must be a JSON object")
    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValidationError("Webhook metadata must be a JSON object")
    logger.info(f"Webhook received: event={event} id={data.get('id')} status={data.get('status')}")

    record = await log_webhook(WebhookEvent(
        event=event,
        payload=payload,
        signature=signature,
        order_id=metadata.get("orderId"),
        payout_id=metadata.get("payoutId"),
        checkout_session_id=data.get("id") if event.startswith("checkout_session.") else None,
    ))

    handler = WEBHOOK_HANDLERS.get(event)
    try:
        if handler is None:
            logger.warning(f"Unhandled webhook event: {event}")
        else:
            await handler(data)
    except Exception as exc:
        await mark_webhook_processed(record.id, success=False, error=str(exc))
        raise
    await mark_webhook_processed(record.id, success=True)

    return {
        "success": True,
        "message": "Webhook processed successfully",
        "event": event,
        "timestamp": utcnow().isoformat(),
    }


# ---------------------------------------------------------------------------
# Seller payouts
# ---------------------------------------------------------------------------
async def _record_seller_payout(seller_id: str, amount: float) -> None:
    summary = await SellerPayoutSummary.get(seller_id)
    now = utcnow()
    if summary is not None:
        await summary.apply(
            increments={"total_payouts": amount, "payout_count": 1},
            values={"last_payout_at": now},
        )
    else:
        await SellerPayoutSummary(
            id=seller_id,
            seller_id=seller_id,
            total_payouts=amount,
            payout_count=1,
            last_payout_at=now,
        ).put()


async def create_seller_payout(request: PayoutRequest, gateway: MonimeClient) -> Dict[str, Any]:
    """
    Pay a seller out of their available balance through the gateway and
    record the payout.
    """
    if not request.seller_id or request.amount is None or not request.payout_account:
        raise ValidationError("sellerId, amount, and payoutAccount are required")
    if request.amount <= 0:
        raise ValidationError("Amount must be greater than 0")

    seller = await User.get(request.seller_id)
    if seller is None:
        raise NotFoundError(f"Seller with ID {request.seller_id} does not exist")
    if not seller.has_store:
        raise ValidationError("User does not have an active store")

    available = await calculate_seller_balance(request.seller_id)
    if request.amount > available:
        raise ValidationError(
            f"Requested amount ({request.amount}) exceeds available balance ({available})"
        )

    payout_id = f"payout_{request.seller_id}_{now_ms()}_{random_base36()}"
    description = request.description or f"Payout for seller {seller.display_name or request.seller_id}"
    response = await gateway.create_payout(
        amount=request.amount,
        seller_id=request.seller_id,
        destination=request.payout_account,
        description=description,
        metadata={
            "sellerName": seller.display_name,
            "sellerEmail": seller.email,
            "payoutId": payout_id,
            "orderIds": request.order_ids or None,
        },
    )

    payout = await create_payout_record(Payout(
        id=payout_id,
        payout_id=payout_id,
        monime_payout_id=response.get("id"),
        seller_id=request.seller_id,
        seller_info=SellerInfo(name=seller.display_name, email=seller.email, phone=seller.phone_number),
        amount=request.amount,
        currency=response.get("currency"),
        payout_account=request.payout_account,
        description=description,
        order_ids=request.order_ids,
        monime_response=response,
    ))
    await _record_seller_payout(request.seller_id, request.amount)
    await create_transaction(Transaction(
        type=TransactionType.PAYOUT,
        payout_id=payout.id,
        user_id=request.seller_id,
        amount=request.amount,
        currency=response.get("currency") or gateway.config.currency,
        status=PayoutStatus.PENDING.value,
        description=description,
        monime_id=response.get("id"),
    ))

    logger.info(f"Payout {payout_id} created for seller {request.seller_id}: {request.amount}")
    return {
        "success": True,
        "payoutId": payout_id,
        "monimePayoutId": response.get("id"),
        "amount": request.amount,
        "currency": response.get("currency"),
        "status": response.get("status"),
        "estimatedArrival": response.get("estimated_arrival"),
        "message": "Payout created successfully",
    }
