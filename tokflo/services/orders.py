import logging
import random
import string
import time
from typing import Any, Dict, Iterable, List, Optional, Union

from ..enums import OrderByDirection, OrderStatus, PaymentStatus
from ..exceptions import NotFoundError
from ..firestore_model import utcnow
from ..models import Order
from ..pydantic_compat import model_dump_compat

logger = logging.getLogger(__name__)

DEFAULT_TAX_RATE = 0.15

_BASE36 = string.digits + string.ascii_lowercase

# Status -> timestamp field stamped when an order reaches it
_STATUS_TIMESTAMPS = {
    OrderStatus.PAID.value: "paid_at",
    OrderStatus.SHIPPED.value: "shipped_at",
    OrderStatus.DELIVERED.value: "delivered_at",
}


def _value(item: Any, name: str) -> float:
    return item[name] if isinstance(item, dict) else getattr(item, name)


def calculate_order_total(
    items: Iterable[Any],
    shipping_rate: float = 0,
    tax_rate: float = DEFAULT_TAX_RATE,
) -> Dict[str, float]:
    """
    Subtotal, shipping, tax and total for ``items`` (anything with ``price``
    and ``quantity``), each rounded to two decimals.
    """
    subtotal = sum(_value(item, "price") * _value(item, "quantity") for item in items)
    tax = subtotal * tax_rate
    total = subtotal + shipping_rate + tax
    return {
        "subtotal": round(subtotal, 2),
        "shipping": round(shipping_rate, 2),
        "tax": round(tax, 2),
        "total": round(total, 2),
    }


def now_ms() -> int:
    return int(time.time() * 1000)


def random_base36(length: int = 9) -> str:
    return "".join(random.choice(_BASE36) for _ in range(length))


def generate_order_id() -> str:
    """``order_<epoch ms>_<9 base36 chars>``"""
    return f"order_{now_ms()}_{random_base36()}"


def generate_order_number() -> str:
    """Human-readable ``TF-`` number from the last eight digits of the clock."""
    return f"TF-{str(now_ms())[-8:]}"


async def create_order(order: Order) -> Order:
    order.status = OrderStatus.PENDING
    order.payment_status = PaymentStatus.PENDING
    if order.id is None and order.order_id:
        order.id = order.order_id
    await order.save()
    logger.info(f"Order created: {order.id}")
    return order


async def get_order(order_id: str) -> Order:
    order = await Order.get(order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


async def update_order_status(order_id: str, status: Union[OrderStatus, str], **extra: Any) -> Order:
    order = await get_order(order_id)
    status = OrderStatus(status)
    values = {"status": status, **extra}
    stamp_field = _STATUS_TIMESTAMPS.get(status.value)
    if stamp_field:
        values[stamp_field] = utcnow()
    await order.apply(values=values)
    logger.info(f"Order {order_id} status -> {status.value}")
    return order


async def update_order_payment_status(
    order_id: str,
    payment_status: Union[PaymentStatus, str],
    **extra: Any,
) -> Order:
    order = await get_order(order_id)
    await order.apply(values={"payment_status": PaymentStatus(payment_status), **extra})
    return order


async def get_user_orders(uid: str, limit: int = 10) -> List[Order]:
    return await Order.find_all(
        filters=[Order.user_id == uid],
        order_by=(Order.created_at, OrderByDirection.DESCENDING),
        limit=limit,
    )


async def get_store_orders(store_id: str, limit: int = 20) -> List[Order]:
    return await Order.find_all(
        filters=[Order.store_id == store_id],
        order_by=(Order.created_at, OrderByDirection.DESCENDING),
        limit=limit,
    )


def order_public_view(order: Order) -> Dict[str, Any]:
    """
    JSON body served for ``GET /api/orders/{id}``: the stored fields plus a
    ``paymentDetails`` summary that carries no gateway secrets.
    """
    body = model_dump_compat(order, by_alias=True, exclude_none=True)
    body["id"] = order.id
    body["success"] = True
    body["paymentDetails"] = {
        "method": order.payment_method,
        "status": order.payment_status,
    }
    return body
