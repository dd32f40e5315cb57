import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from sanatan_store.core.config import Settings, settings as default_settings
from sanatan_store.core.errors import ConfigurationError, StoreError
from sanatan_store.core.security import TokenIssuer

# 1. Infrastructure & Application Imports
from sanatan_store.infrastructure.database import build_engine, build_session_factory, create_tables
from sanatan_store.infrastructure.email_service import ResendEmailSender
from sanatan_store.infrastructure.notification_service import TwilioSmsSender
from sanatan_store.infrastructure.razorpay_gateway import RazorpayGateway
from sanatan_store.infrastructure.repositories.order_repository import SqlOrderRepository
from sanatan_store.infrastructure.repositories.user_repository import SqlUserRepository
from sanatan_store.infrastructure.state_manager import InMemoryPhoneStateStore, RedisPhoneStateStore
from sanatan_store.application.admin import AdminService
from sanatan_store.application.checkout import CheckoutService
from sanatan_store.application.notifications import NotificationDispatcher
from sanatan_store.application.otp_service import OTPPolicy, OTPService
from sanatan_store.interfaces import admin_routes, auth_routes, checkout_routes

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: Any
    otp_service: OTPService
    checkout: CheckoutService
    notifier: NotificationDispatcher
    admin: AdminService
    tokens: Optional[TokenIssuer]


def _optional(name: str, factory, settings: Settings):
    """Build a provider adapter; missing credentials are fatal only in production."""
    try:
        return factory()
    except ConfigurationError as e:
        if settings.is_production:
            raise
        logger.warning("⚠️ %s disabled: %s", name, e)
        return None


# ---------------------------------------------------------
# COMPOSITION ROOT
# ---------------------------------------------------------
def build_container(settings: Settings) -> Container:
    engine = build_engine(settings.DATABASE_URL)
    session_factory = build_session_factory(engine)
    users = SqlUserRepository(session_factory)
    orders = SqlOrderRepository(session_factory)

    backend = settings.OTP_STORE_BACKEND.lower()
    if backend == "redis":
        if not settings.REDIS_URL:
            raise ConfigurationError("OTP_STORE_BACKEND=redis needs REDIS_URL")
        store = RedisPhoneStateStore.from_url(settings.REDIS_URL, timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS)
    elif backend == "memory" and not settings.is_production:
        logger.warning("⚠️ Using in-process OTP store. Codes are not shared between workers.")
        store = InMemoryPhoneStateStore()
    else:
        raise ConfigurationError(f"Unsupported OTP_STORE_BACKEND for {settings.ENVIRONMENT}: {backend}")

    secret = settings.SESSION_SECRET
    if not secret and not settings.is_production:
        logger.warning("⚠️ SESSION_SECRET not set, using a per-process secret. Sessions end on restart.")
        secret = secrets.token_urlsafe(32)
    tokens = TokenIssuer(secret, settings.SESSION_TTL_SECONDS)

    sms = _optional("SMS", lambda: TwilioSmsSender.from_settings(settings), settings)
    email = _optional("Email", lambda: ResendEmailSender.from_settings(settings), settings)
    gateway = _optional("Payments", lambda: RazorpayGateway.from_settings(settings), settings)

    return Container(
        settings=settings,
        engine=engine,
        otp_service=OTPService(store, users, sms, tokens, policy=OTPPolicy.from_settings(settings)),
        checkout=CheckoutService(
            orders,
            gateway,
            settings.RAZORPAY_KEY_SECRET,
            minimum_amount=settings.MIN_ORDER_AMOUNT,
            max_amount=settings.MAX_ORDER_AMOUNT,
            currency=settings.CURRENCY,
        ),
        notifier=NotificationDispatcher(
            orders, sms, email, users,
            timezone_name=settings.STORE_TIMEZONE,
            support_email=settings.SUPPORT_EMAIL,
        ),
        admin=AdminService(users, orders),
        tokens=tokens,
    )


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    settings = settings or (container.settings if container else default_settings)
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        create_tables(container.engine)
        yield
        container.engine.dispose()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message, "code": "invalid_input"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("❌ Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "internal_error"})

    # Include Routers
    app.include_router(auth_routes.router)
    app.include_router(checkout_routes.router)
    app.include_router(admin_routes.router)

    @app.get("/")
    def health_check():
        services = {
            "sms": container.otp_service.sms_sender is not None,
            "payments": container.checkout.gateway is not None,
            "email": container.notifier.email_sender is not None,
        }
        status = "active" if all(services.values()) else "degraded"
        return {"status": status, "system": "Sanatan Store Checkout", "services": services}

    return app


app = create_app()
