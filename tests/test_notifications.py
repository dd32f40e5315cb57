from decimal import Decimal

import pytest

from sanatan_store.application.notifications import NotificationDispatcher, order_reference
from sanatan_store.infrastructure.notification_service import to_e164

from conftest import FakeEmailSender, FakeSmsSender


def order_fields(**overrides):
    fields = {
        "user_id": "user-1",
        "phone": "9876543210",
        "email": "ramesh@example.com",
        "shipping_address": "12 Dashashwamedh Ghat Road, Varanasi",
        "pincode": "221001",
        "items": [{"id": "p1", "name": "Brass Puja Thali", "price": 250.0, "quantity": 2, "image": None}],
        "shipping_charge": Decimal("30"),
        "total_amount": Decimal("530"),
        "status": "confirmed",
        "payment_method": "online",
        "payment_id": "pay_1",
        "idempotency_key": "payment:pay_1",
    }
    fields.update(overrides)
    return fields


@pytest.mark.parametrize(
    "raw, expected",
    [("9876543210", "+919876543210"), ("+919876543210", "+919876543210"), ("09876543210", "+919876543210")],
)
def test_to_e164(raw, expected):
    assert to_e164(raw) == expected


def test_dispatch_sends_sms_and_email(notifier, orders, sms, email_sender):
    order = orders.create_order(order_fields())

    results = notifier.dispatch(order.id)

    assert results == {"sms": "sent", "email": "sent"}
    to, body = sms.sent[0]
    assert to == "+919876543210"
    assert order_reference(order.id) in body
    assert "confirmed" in body
    assert "530.00" in body

    to, subject, html = email_sender.sent[0]
    assert to == "ramesh@example.com"
    assert subject == f"Order Confirmed! #{order_reference(order.id)}"
    assert "Brass Puja Thali" in html
    assert "₹500.00" in html
    assert "support@example.com" in html


def test_cod_message_mentions_cash_on_delivery(notifier, orders, sms, email_sender):
    order = orders.create_order(order_fields(status="pending_cod", payment_method="cod", payment_id=None,
                                             idempotency_key=None))
    notifier.dispatch(order.id)

    assert "Cash on Delivery" in sms.sent[0][1]
    assert "Cash on Delivery" in email_sender.sent[0][2]


def test_placeholder_email_is_never_used(notifier, orders, users, email_sender):
    user = users.create_user("+919876543210", "919876543210@phone.auth", "")
    order = orders.create_order(order_fields(user_id=user.id, email=None))

    results = notifier.dispatch(order.id)

    assert results["email"] is None
    assert email_sender.sent == []


def test_email_falls_back_to_account_email(notifier, orders, users, email_sender):
    user = users.create_user("+919876543210", "ramesh@example.com", "Ramesh")
    order = orders.create_order(order_fields(user_id=user.id, email=None))

    notifier.dispatch(order.id)

    assert email_sender.sent[0][0] == "ramesh@example.com"


def test_failures_are_reported_not_raised(orders, users):
    notifier = NotificationDispatcher(orders, FakeSmsSender(fail=True), FakeEmailSender(fail=True), users)
    order = orders.create_order(order_fields())

    assert notifier.dispatch(order.id) == {"sms": "failed", "email": "failed"}


def test_unconfigured_providers_are_skipped(orders):
    notifier = NotificationDispatcher(orders, None, None)
    order = orders.create_order(order_fields())

    assert notifier.dispatch(order.id) == {"sms": "skipped", "email": "skipped"}


def test_unknown_order(notifier, sms):
    assert notifier.dispatch("missing") == {"sms": None, "email": None}
    assert sms.sent == []


def test_email_escapes_item_names(notifier, orders):
    items = [{"id": "p1", "name": "<script>alert(1)</script>", "price": 450.0, "quantity": 1, "image": None}]
    order = orders.create_order(order_fields(items=items))

    html = notifier.render_email(order)

    assert "<script>" not in html
    assert "&lt;script&gt;" in html
