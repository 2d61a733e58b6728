"""
Async client for the Monime payments API: hosted checkout sessions, seller
payouts and webhook signature checks.
"""
import hashlib
import hmac
import logging
import time
from typing import Any, Dict, List, Optional, Union

import httpx

from .exceptions import PaymentGatewayError
from .models import LineItem
from .pydantic_compat import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
CHECKOUT_PAYMENT_METHODS = ["mobile_money", "card", "bank_transfer"]
BRAND_COLOR = "#3B82F6"


class MonimeConfig(BaseModel):
    base_url: str = "https://api.monime.io/v1"
    api_token: Optional[str] = None
    space_id: Optional[str] = None
    environment: str = "test"
    currency: str = "SLE"
    webhook_secret: Optional[str] = None
    public_base_url: str = "http://localhost:3000"

    @classmethod
    def from_settings(cls, settings) -> "MonimeConfig":
        """The live token is used only when ``MONIME_ENVIRONMENT=live``."""
        token = settings.monime_live_api_token if settings.is_live else settings.monime_test_api_token
        return cls(
            base_url=settings.monime_api_base_url,
            api_token=token,
            space_id=settings.monime_space_id,
            environment=settings.monime_environment,
            currency=settings.payment_currency,
            webhook_secret=settings.monime_webhook_secret,
            public_base_url=settings.base_url.rstrip("/"),
        )


def generate_idempotency_key(reference: str, operation: str = "payment") -> str:
    return f"{operation}_{reference}_{int(time.time() * 1000)}"


class MonimeClient:
    """
    Thin wrapper over :class:`httpx.AsyncClient`. Close it with
    :meth:`aclose` or use it as an async context manager.
    """

    def __init__(
        self,
        config: MonimeConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.config = config
        self._http = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/") + "/",
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "MonimeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------ #
    # Transport                                                          #
    # ------------------------------------------------------------------ #

    def headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.api_token or ''}",
            "Monime-Space-Id": self.config.space_id or "",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._http.request(
                method,
                endpoint.lstrip("/"),
                json=json,
                headers=self.headers(idempotency_key),
            )
        except httpx.HTTPError as exc:
            logger.error(f"Monime {method} {endpoint} failed: {exc}")
            raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            message = (data or {}).get("message") if isinstance(data, dict) else None
            message = message or f"HTTP error! status: {response.status_code}"
            logger.error(f"Monime {method} {endpoint} -> {response.status_code}: {message}")
            raise PaymentGatewayError(message, status_code=response.status_code, payload=data)

        if not isinstance(data, dict):
            raise PaymentGatewayError(
                "Payment gateway returned an unexpected body",
                status_code=response.status_code,
                payload=response.text,
            )
        return data

    # ------------------------------------------------------------------ #
    # Checkout sessions                                                  #
    # ------------------------------------------------------------------ #

    async def create_checkout_session(
        self,
        line_items: List[LineItem],
        order_id: str,
        customer_email: str,
        customer_phone: str,
        customer_name: str = "",
        order_number: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Open a hosted checkout page. Returns the gateway's session object
        (``id``, ``url``, ``expires_at``, ...).
        """
        base = self.config.public_base_url
        number = order_number or order_id
        total_amount = sum(item.price * item.quantity for item in line_items)

        payload = {
            "line_items": [
                {
                    "name": item.name,
                    "description": item.description or "",
                    "price": float(item.price),
                    "quantity": int(item.quantity),
                    "image_url": item.image_url or None,
                }
                for item in line_items
            ],
            "order_number": number,
            "currency": self.config.currency,
            "description": description or f"TokFlo Store - Order {number}",
            "customer": {
                "email": customer_email,
                "phone": customer_phone,
                "name": customer_name or "",
            },
            "metadata": {
                "orderId": order_id,
                "orderNumber": number,
                "source": "tokflo_store",
                "totalAmount": total_amount,
                **(metadata or {}),
            },
            "success_url": success_url or f"{base}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": cancel_url or f"{base}/payment/cancel",
            "webhook_url": f"{base}/api/payments/webhook",
            "payment_methods": list(CHECKOUT_PAYMENT_METHODS),
            "branding": {
                "primary_color": BRAND_COLOR,
                "logo_url": f"{base}/tokflo-favicon.svg",
            },
        }
        session = await self.request(
            "POST",
            "/checkout-sessions",
            json=payload,
            idempotency_key=generate_idempotency_key(order_id, "checkout_session"),
        )
        logger.info(f"Checkout session {session.get('id')} opened for {order_id}")
        return session

    async def get_checkout_session(self, session_id: str) -> Dict[str, Any]:
        return await self.request("GET", f"/checkout-sessions/{session_id}")

    async def get_payment_status(self, payment_code_id: str) -> Dict[str, Any]:
        """
        Status of an order opened before checkout sessions. Monime serves
        those codes from the checkout-session endpoint.
        """
        logger.warning(f"Looking up legacy payment code {payment_code_id}; use get_checkout_session instead")
        return await self.get_checkout_session(payment_code_id)

    # ------------------------------------------------------------------ #
    # Payouts                                                            #
    # ------------------------------------------------------------------ #

    async def create_payout(
        self,
        amount: float,
        seller_id: str,
        destination: Any,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload = {
            "amount": float(amount),
            "currency": self.config.currency,
            "destination": destination,
            "description": description or f"Payout for seller {seller_id}",
            "metadata": {"sellerId": seller_id, "source": "tokflo_store", **(metadata or {})},
        }
        return await self.request(
            "POST",
            "/payouts",
            json=payload,
            idempotency_key=generate_idempotency_key(seller_id, "payout"),
        )

    # ------------------------------------------------------------------ #
    # Webhooks                                                           #
    # ------------------------------------------------------------------ #

    def verify_webhook_signature(self, payload: Union[str, bytes], signature: Optional[str]) -> bool:
        """HMAC-SHA256 hex digest of the raw body under the webhook secret."""
        if not self.config.webhook_secret or not signature:
            return False
        body = payload.encode("utf-8") if isinstance(payload, str) else payload
        expected = hmac.new(self.config.webhook_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))
