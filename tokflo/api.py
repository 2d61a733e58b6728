"""
HTTP surface of the TokFlo store: checkout, payment status, gateway
webhooks, seller payouts and order lookup.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__, init_tokflo
from .config import Settings
from .exceptions import (
    NotFoundError,
    PaymentGatewayError,
    PermissionDeniedError,
    SignatureError,
    TokFloError,
    ValidationError,
)
from .firestore_client import FirestoreDB
from .monime import MonimeClient, MonimeConfig
from .services.checkout import (
    CheckoutRequest,
    PayoutRequest,
    create_checkout,
    create_seller_payout,
    process_webhook,
    verify_payment_status,
)
from .services.orders import get_order, order_public_view

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("monime-signature", "x-monime-signature")

# Path -> "error" title used in failure bodies
ERROR_TITLES = {
    "/api/payments/create-checkout": "Checkout session creation failed",
    "/api/payments/verify-status": "Status verification failed",
    "/api/payments/webhook": "Webhook processing failed",
    "/api/payments/create-payout": "Payout creation failed",
}


def error_status(exc: Exception) -> int:
    if isinstance(exc, SignatureError):
        return 401
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, PermissionDeniedError):
        return 403
    if isinstance(exc, PaymentGatewayError):
        return 400 if exc.is_validation_error else 502
    return 500


def _error_title(request: Request, status_code: int) -> str:
    if request.url.path.startswith("/api/orders/"):
        return "Order not found" if status_code == 404 else "Order lookup failed"
    return ERROR_TITLES.get(request.url.path, "Request failed")


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[FirestoreDB] = None,
    gateway: Optional[MonimeClient] = None,
) -> FastAPI:
    """
    Build the application. ``db`` and ``gateway`` are created from
    ``settings`` at startup unless supplied; a supplied gateway is left
    open on shutdown.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = db or FirestoreDB.from_settings(settings)
        init_tokflo(database)
        app.state.db = database
        app.state.gateway = gateway or MonimeClient(MonimeConfig.from_settings(settings))
        logger.info(
            f"TokFlo API started (project={settings.project_id}, monime={settings.monime_environment})"
        )
        try:
            yield
        finally:
            if gateway is None:
                await app.state.gateway.aclose()
            logger.info("TokFlo API stopped")

    app = FastAPI(title="TokFlo API", version=__version__, lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TokFloError)
    async def handle_tokflo_error(request: Request, exc: TokFloError):
        status_code = error_status(exc)
        logger.error(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"error": _error_title(request, status_code), "message": str(exc)},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        content = {"error": _error_title(request, 500), "message": "An unexpected error occurred"}
        if settings.debug:
            content["details"] = repr(exc)
        return JSONResponse(status_code=500, content=content)

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "TokFlo Backend", "version": __version__}

    @app.post("/api/payments/create-checkout")
    async def create_checkout_route(body: CheckoutRequest, request: Request):
        return await create_checkout(body, request.app.state.gateway, base_url=settings.base_url)

    @app.get("/api/payments/verify-status")
    async def verify_status_route(
        request: Request,
        order_id: Optional[str] = Query(None, alias="orderId"),
        checkout_session_id: Optional[str] = Query(None, alias="checkoutSessionId"),
        payment_code_id: Optional[str] = Query(None, alias="paymentCodeId"),
    ):
        return await verify_payment_status(
            request.app.state.gateway,
            order_id=order_id,
            checkout_session_id=checkout_session_id,
            payment_code_id=payment_code_id,
        )

    @app.post("/api/payments/webhook")
    async def webhook_route(request: Request):
        raw_body = await request.body()
        signature = next(
            (request.headers[name] for name in SIGNATURE_HEADERS if request.headers.get(name)),
            None,
        )
        return await process_webhook(raw_body, signature, request.app.state.gateway)

    @app.post("/api/payments/create-payout")
    async def create_payout_route(body: PayoutRequest, request: Request):
        return await create_seller_payout(body, request.app.state.gateway)

    @app.get("/api/orders/{order_id}")
    async def get_order_route(order_id: str):
        return order_public_view(await get_order(order_id))

    return app
