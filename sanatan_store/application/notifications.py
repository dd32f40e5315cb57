import logging
import os
from datetime import datetime, timezone
from typing import Optional

import pytz
from jinja2 import Environment, FileSystemLoader, select_autoescape

from sanatan_store.core.errors import DeliveryFailed
from sanatan_store.domain.models import Order
from sanatan_store.infrastructure.notification_service import to_e164
from sanatan_store.interfaces.IEmailSender import IEmailSender
from sanatan_store.interfaces.IOrderRepository import IOrderRepository
from sanatan_store.interfaces.ISmsSender import ISmsSender
from sanatan_store.interfaces.IUserRepository import IUserRepository

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")

SMS_TEMPLATE = (
    "🙏 नमस्ते! Your order #{ref} has been {verb}! Total: ₹{total:,.2f}. "
    "Thank you for shopping with श्री Sanatan."
)


def order_reference(order_id: str) -> str:
    return order_id[:8].upper()


def _real_email(email: Optional[str]) -> Optional[str]:
    if email and not email.endswith("@phone.auth"):
        return email
    return None


class NotificationDispatcher:
    """
    Order confirmations by SMS and email. Runs after the checkout response has
    been sent; reads everything from the stored order and only ever logs
    failures.
    """

    def __init__(self, orders: IOrderRepository, sms_sender: Optional[ISmsSender],
                 email_sender: Optional[IEmailSender], users: Optional[IUserRepository] = None,
                 timezone_name: str = "Asia/Kolkata", support_email: str = ""):
        self.orders = orders
        self.sms_sender = sms_sender
        self.email_sender = email_sender
        self.users = users
        self.tz = pytz.timezone(timezone_name)
        self.support_email = support_email
        self.templates = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=select_autoescape(["html"]),
        )

    def dispatch(self, order_id: str) -> dict:
        results = {"sms": None, "email": None}
        try:
            order = self.orders.get_order(order_id)
        except Exception:
            logger.exception("❌ Could not load order %s for notification", order_id)
            return results
        if order is None:
            logger.warning("⚠️ Order %s not found, nothing to notify", order_id)
            return results

        logger.info("Sending order notifications for: %s", order.id)
        results["sms"] = self._send_sms(order)
        email = self._email_for(order)
        if email:
            results["email"] = self._send_email(order, email)
        logger.info("Notification results for %s: %s", order.id, results)
        return results

    def _send_sms(self, order: Order) -> str:
        if self.sms_sender is None:
            logger.warning("⚠️ SMS provider not configured, order %s not texted", order.id)
            return "skipped"
        verb = "placed (Cash on Delivery)" if order.status == "pending_cod" else "confirmed"
        body = SMS_TEMPLATE.format(ref=order_reference(order.id), verb=verb, total=float(order.total_amount))
        try:
            self.sms_sender.send(to_e164(order.phone), body)
            return "sent"
        except DeliveryFailed as e:
            logger.error("❌ Order SMS failed for %s: %s", order.id, e)
        except Exception:
            logger.exception("❌ Order SMS failed for %s", order.id)
        return "failed"

    def _send_email(self, order: Order, email: str) -> str:
        if self.email_sender is None:
            logger.warning("⚠️ Email provider not configured, order %s not emailed", order.id)
            return "skipped"
        try:
            html = self.render_email(order)
            self.email_sender.send(email, f"Order Confirmed! #{order_reference(order.id)}", html)
            return "sent"
        except DeliveryFailed as e:
            logger.error("❌ Order email failed for %s: %s", order.id, e)
        except Exception:
            logger.exception("❌ Order email failed for %s", order.id)
        return "failed"

    def _email_for(self, order: Order) -> Optional[str]:
        email = _real_email(order.email)
        if email or self.users is None:
            return email
        try:
            user = self.users.get_user(order.user_id)
        except Exception:
            logger.exception("❌ Could not look up email for order %s", order.id)
            return None
        return _real_email(user.email) if user is not None else None

    def render_email(self, order: Order) -> str:
        created = order.created_at or datetime.now(timezone.utc)
        if created.tzinfo is None:
            created = pytz.utc.localize(created)
        items = [
            {**item, "line_total": float(item["price"]) * int(item["quantity"])}
            for item in order.items
        ]
        template = self.templates.get_template("order_confirmation.html")
        return template.render(
            order_ref=order_reference(order.id),
            order_date=created.astimezone(self.tz).strftime("%d %B %Y"),
            items=items,
            shipping=float(order.shipping_charge or 0),
            total=float(order.total_amount),
            shipping_address=order.shipping_address,
            cod=order.status == "pending_cod",
            support_email=self.support_email,
        )
