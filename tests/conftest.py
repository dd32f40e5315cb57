import re
from decimal import Decimal

import pytest

from sanatan_store.application.admin import AdminService
from sanatan_store.application.checkout import CheckoutService
from sanatan_store.application.notifications import NotificationDispatcher
from sanatan_store.application.otp_service import OTPService
from sanatan_store.core.config import Settings
from sanatan_store.core.errors import DeliveryFailed, GatewayError
from sanatan_store.core.security import TokenIssuer
from sanatan_store.domain.checkout import CartLine, OrderPayload
from sanatan_store.domain.shipping import shipping_zone_for
from sanatan_store.infrastructure.database import build_engine, build_session_factory, create_tables
from sanatan_store.infrastructure.repositories.order_repository import SqlOrderRepository
from sanatan_store.infrastructure.repositories.user_repository import SqlUserRepository
from sanatan_store.infrastructure.state_manager import InMemoryPhoneStateStore
from sanatan_store.interfaces.IEmailSender import IEmailSender
from sanatan_store.interfaces.IPaymentGateway import IPaymentGateway
from sanatan_store.interfaces.ISmsSender import ISmsSender

PHONE = "+919876543210"
FIXED_CODE = "123456"
KEY_SECRET = "rzp_test_secret"
SESSION_SECRET = "test-session-secret"


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSmsSender(ISmsSender):
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, to, body):
        if self.fail:
            raise DeliveryFailed("Failed to send SMS. Please try again.")
        self.sent.append((to, body))
        return f"SM{len(self.sent)}"

    @property
    def last_code(self):
        match = re.search(r"code is: (\d{6})", self.sent[-1][1])
        return match.group(1) if match else None


class FakeEmailSender(IEmailSender):
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, to, subject, html):
        if self.fail:
            raise DeliveryFailed("Failed to send email")
        self.sent.append((to, subject, html))
        return f"email_{len(self.sent)}"


class FakePaymentGateway(IPaymentGateway):
    key_id = "rzp_test_key"

    def __init__(self):
        self.orders = {}
        self.created = []
        self.fetched = []

    def create_order(self, amount_minor, currency, receipt, notes):
        order = {
            "id": f"order_{len(self.orders) + 1}",
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        self.orders[order["id"]] = order
        self.created.append(order)
        return order

    def fetch_order(self, gateway_order_id):
        self.fetched.append(gateway_order_id)
        if gateway_order_id not in self.orders:
            raise GatewayError("The id provided does not exist")
        return self.orders[gateway_order_id]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sms():
    return FakeSmsSender()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_tables(engine, max_retries=1, wait_seconds=0)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def users(session_factory):
    return SqlUserRepository(session_factory)


@pytest.fixture
def orders(session_factory):
    return SqlOrderRepository(session_factory)


@pytest.fixture
def tokens():
    # PyJWT checks exp against the real clock
    return TokenIssuer(SESSION_SECRET, 3600)


@pytest.fixture
def store():
    return InMemoryPhoneStateStore()


@pytest.fixture
def otp_service(store, users, sms, tokens, clock):
    return OTPService(store, users, sms, tokens, clock=clock, code_generator=lambda: FIXED_CODE)


@pytest.fixture
def checkout(orders, gateway):
    return CheckoutService(orders, gateway, KEY_SECRET, minimum_amount=399, max_amount=10_000_000)


@pytest.fixture
def notifier(orders, sms, email_sender, users):
    return NotificationDispatcher(orders, sms, email_sender, users, support_email="support@example.com")


@pytest.fixture
def make_payload():
    """Order payload for user_id; total defaults to the correct server-side total."""
    def _make(user_id, items=None, pincode="221001", total=None, phone="9876543210", email=None,
              shipping_address="12 Dashashwamedh Ghat Road, Varanasi"):
        if items is None:
            items = [CartLine("p1", "Brass Puja Thali", Decimal("250"), 2)]
        if total is None:
            subtotal = sum((line.subtotal for line in items), Decimal("0"))
            total = subtotal + shipping_zone_for(pincode).flat_charge
        return OrderPayload(
            user_id=user_id,
            phone=phone,
            shipping_address=shipping_address,
            pincode=pincode,
            items=items,
            total_amount=Decimal(str(total)),
            email=email,
        )
    return _make


@pytest.fixture
def settings():
    return Settings(_env_file=None, ENVIRONMENT="test", DATABASE_URL="sqlite://")


@pytest.fixture
def container(settings, engine, users, orders, otp_service, checkout, notifier, tokens):
    from sanatan_store.main import Container

    return Container(
        settings=settings,
        engine=engine,
        otp_service=otp_service,
        checkout=checkout,
        notifier=notifier,
        admin=AdminService(users, orders),
        tokens=tokens,
    )


@pytest.fixture
def client(container):
    from fastapi.testclient import TestClient

    from sanatan_store.main import create_app

    with TestClient(create_app(container=container)) as c:
        yield c
