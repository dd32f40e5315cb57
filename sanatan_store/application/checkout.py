"""
Checkout pipeline.

    quote -> gate -> [online: verify signature, verify amount] -> persist -> notify

Both payment methods converge on OrderPersister and the notification hook.
Nothing is written before every integrity check has passed, and a failed
notification never touches the checkout result.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from sanatan_store.core.errors import (
    AmountMismatch,
    DuplicateOrder,
    InvalidInput,
    PersistenceFailed,
    ServiceUnavailable,
    Unauthorized,
    VerificationFailed,
)
from sanatan_store.domain.checkout import CartLine, OrderGate, OrderPayload, Quote, quote, to_minor_units
from sanatan_store.domain.models import Order
from sanatan_store.domain.payments import CashOnDelivery, OnlinePayment, PaymentMethod, sanitize_receipt, verify_signature
from sanatan_store.interfaces.IOrderRepository import IOrderRepository
from sanatan_store.interfaces.IPaymentGateway import IPaymentGateway

logger = logging.getLogger(__name__)

MIN_GATEWAY_AMOUNT = Decimal("1")


@dataclass
class CheckoutResult:
    order: Order
    created: bool

    def to_dict(self):
        return {
            "verified": True,
            "order_id": self.order.id,
            "status": self.order.status,
            "payment_id": self.order.payment_id,
            "total_amount": float(self.order.total_amount),
            "duplicate": not self.created,
        }


class PaymentVerifier:
    """Integrity checks on an online payment, before anything is persisted."""

    def __init__(self, gateway: IPaymentGateway, key_secret: str):
        self.gateway = gateway
        self.key_secret = key_secret

    def verify(self, payment: OnlinePayment, expected_total: Decimal):
        if not (payment.gateway_order_id and payment.payment_id and payment.signature):
            raise InvalidInput("Missing payment details")

        if not verify_signature(payment.gateway_order_id, payment.payment_id, payment.signature, self.key_secret):
            logger.warning("Invalid payment signature for gateway order %s payment %s",
                           payment.gateway_order_id, payment.payment_id)
            raise VerificationFailed("Payment verification failed")
        logger.info("Payment signature verified: %s", payment.payment_id)

        gateway_order = self.gateway.fetch_order(payment.gateway_order_id)
        expected_minor = to_minor_units(expected_total)
        authorized = gateway_order.get("amount")
        if authorized != expected_minor:
            logger.warning("Amount mismatch - gateway: %s, order: %s (gateway order %s)",
                           authorized, expected_minor, payment.gateway_order_id)
            raise AmountMismatch("Payment amount does not match order total")
        logger.info("Amount verified: %s paise", authorized)


class OrderPersister:
    def __init__(self, orders: IOrderRepository):
        self.orders = orders

    def persist(self, user_id: str, payload: OrderPayload, priced: Quote, payment: PaymentMethod,
                email: Optional[str] = None) -> CheckoutResult:
        key = payment.idempotency_key(user_id)
        if key:
            existing = self.orders.get_by_idempotency_key(key)
            if existing is not None:
                return self._replay(existing, user_id, key)

        online = isinstance(payment, OnlinePayment)
        fields = {
            "user_id": user_id,  # the authenticated caller, never the request body
            "phone": payload.phone,
            "email": email,
            "shipping_address": payload.sanitized_address(),
            "pincode": payload.pincode,
            "items": payload.sanitized_items(),
            "shipping_charge": priced.shipping,
            "total_amount": priced.total,
            "status": "confirmed" if online else "pending_cod",
            "payment_method": payment.method,
            "gateway_order_id": payment.gateway_order_id if online else None,
            "payment_id": payment.payment_id if online else None,
            "idempotency_key": key,
        }
        try:
            order = self.orders.create_order(fields)
        except DuplicateOrder:
            # A concurrent retry of the same payment got there first
            return self._replay(self.orders.get_by_idempotency_key(key), user_id, key)
        except SQLAlchemyError as e:
            if online:
                logger.error("❌ Payment %s captured but order save failed: %s", payment.payment_id, e)
                raise PersistenceFailed("Payment verified but order save failed. We will reconcile it shortly.",
                                        payment_id=payment.payment_id)
            logger.error("❌ COD order save failed: %s", e)
            raise PersistenceFailed("Could not place your order. Please try again.")
        logger.info("Order saved: %s (%s)", order.id, order.status)
        return CheckoutResult(order=order, created=True)

    @staticmethod
    def _replay(existing: Order, user_id: str, key: str) -> CheckoutResult:
        if existing.user_id != user_id:
            logger.warning("Idempotency key %s replayed by %s, owned by %s", key, user_id, existing.user_id)
            raise Unauthorized("This payment belongs to another account")
        logger.info("Order %s already recorded for %s", existing.id, key)
        return CheckoutResult(order=existing, created=False)


class CheckoutService:
    def __init__(self, orders: IOrderRepository, gateway: Optional[IPaymentGateway],
                 key_secret: Optional[str], minimum_amount, max_amount: int,
                 currency: str = "INR"):
        self.gate = OrderGate(minimum_amount)
        self.persister = OrderPersister(orders)
        self.orders = orders
        self.gateway = gateway  # None when Razorpay is not configured
        self.verifier = PaymentVerifier(gateway, key_secret) if gateway is not None and key_secret else None
        self.max_amount = max_amount
        self.currency = currency

    def quote(self, lines: List[CartLine], pincode: str) -> Quote:
        return quote(lines, pincode, self.gate.minimum)

    def create_gateway_order(self, principal_id: str, payload: OrderPayload, receipt: Optional[str] = None) -> Dict:
        self._check_owner(principal_id, payload)
        payload.validate(self.max_amount)
        priced = self.gate.quote(payload)
        self._check_claimed_total(payload, priced)
        if priced.total < MIN_GATEWAY_AMOUNT or priced.total > self.max_amount:
            raise InvalidInput(f"Order amount must be between ₹{MIN_GATEWAY_AMOUNT} and ₹{self.max_amount:,}")
        if self.gateway is None:
            raise ServiceUnavailable("Payment service not configured")

        notes = {"user_id": principal_id, "phone": str(payload.phone)[:15]}
        order = self.gateway.create_order(to_minor_units(priced.total), self.currency, sanitize_receipt(receipt), notes)
        return {
            "orderId": order["id"],
            "amount": order.get("amount"),
            "currency": order.get("currency", self.currency),
            "keyId": self.gateway.key_id,
        }

    def complete_checkout(self, principal_id: str, payload: OrderPayload, payment: PaymentMethod,
                          notify: Callable[[str], None]) -> CheckoutResult:
        self._check_owner(principal_id, payload)
        payload.validate(self.max_amount)
        priced = self.gate.quote(payload)
        self._check_claimed_total(payload, priced)

        if isinstance(payment, OnlinePayment):
            if self.verifier is None:
                raise ServiceUnavailable("Payment service not configured")
            self.verifier.verify(payment, priced.total)
        elif not isinstance(payment, CashOnDelivery):
            raise InvalidInput("Unsupported payment method")

        result = self.persister.persist(principal_id, payload, priced, payment, email=payload.email)
        if result.created:
            try:
                notify(result.order.id)
            except Exception:
                logger.exception("❌ Could not schedule notification for order %s", result.order.id)
        return result

    def list_orders(self, principal_id: str) -> List[Order]:
        return self.orders.list_for_user(principal_id)

    @staticmethod
    def _check_owner(principal_id: str, payload: OrderPayload):
        if payload.user_id != principal_id:
            logger.warning("User ID mismatch - authenticated: %s, order: %s", principal_id, payload.user_id)
            raise Unauthorized("User ID mismatch - cannot create order for another user")

    @staticmethod
    def _check_claimed_total(payload: OrderPayload, priced: Quote):
        if payload.total_amount != priced.total:
            logger.warning("Claimed total %s does not match computed total %s", payload.total_amount, priced.total)
            raise AmountMismatch("Order total does not match items and shipping")
