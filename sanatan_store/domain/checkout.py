"""
Checkout domain: the order payload the client submits, its validation and
sanitisation, the pricing quote and the gate that must pass before any
payment-gateway call is made.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sanatan_store.core.errors import BelowMinimum, InvalidInput
from sanatan_store.domain.shipping import ShippingZone, shipping_zone_for

MAX_ITEMS = 50
MAX_ITEM_NAME = 200
MAX_QUANTITY = 100
MAX_ADDRESS = 500
PAISE = Decimal("0.01")

ORDER_PHONE_PATTERN = re.compile(r"^(\+91)?[6-9][0-9]{9}$")
LOCAL_PHONE_PATTERN = re.compile(r"^[6-9][0-9]{9}$")
PINCODE_PATTERN = re.compile(r"^[0-9]{6}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def to_decimal(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInput(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvalidInput(f"Invalid amount: {value!r}")
    return amount


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def local_phone(phone: str) -> str:
    phone = (phone or "").strip()
    if phone.startswith("+91"):
        return phone[3:]
    return phone


@dataclass
class CartLine:
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    image_ref: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def sanitized(self) -> Dict[str, Any]:
        quantity = min(MAX_QUANTITY, max(1, int(self.quantity)))
        return {
            "id": str(self.product_id),
            "name": str(self.name)[:MAX_ITEM_NAME],
            "price": float(to_decimal(self.unit_price)),
            "quantity": quantity,
            "image": self.image_ref,
        }


@dataclass
class OrderPayload:
    user_id: str
    phone: str
    shipping_address: str
    pincode: str
    items: List[CartLine] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    email: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return sum((line.subtotal for line in self.items), Decimal("0"))

    def sanitized_items(self) -> List[Dict[str, Any]]:
        return [line.sanitized() for line in self.items]

    def sanitized_address(self) -> str:
        return str(self.shipping_address or "")[:MAX_ADDRESS]

    def validate(self, max_amount: int):
        """Shape checks on the submitted order; raises InvalidInput."""
        if not self.user_id:
            raise InvalidInput("Invalid user_id")
        if not self.phone or not ORDER_PHONE_PATTERN.match(self.phone):
            raise InvalidInput("Invalid phone number format")
        if self.total_amount <= 0 or self.total_amount > max_amount:
            raise InvalidInput(f"Invalid total_amount (must be positive number up to {max_amount:,})")
        if self.shipping_address and len(self.shipping_address) > MAX_ADDRESS:
            raise InvalidInput(f"Shipping address too long (max {MAX_ADDRESS} characters)")
        if self.email and not EMAIL_PATTERN.match(self.email):
            raise InvalidInput("Invalid email address")
        if not self.items or len(self.items) > MAX_ITEMS:
            raise InvalidInput(f"Invalid items array (1-{MAX_ITEMS} items required)")
        for i, line in enumerate(self.items, start=1):
            if not line.name or len(line.name) > MAX_ITEM_NAME:
                raise InvalidInput(f"Item {i}: name must be string (max {MAX_ITEM_NAME} chars)")
            if line.unit_price <= 0 or line.unit_price > max_amount:
                raise InvalidInput(f"Item {i}: invalid price")
            if line.unit_price != line.unit_price.quantize(PAISE):
                raise InvalidInput(f"Item {i}: price must be in whole paise")
            if line.quantity < 1 or line.quantity > MAX_QUANTITY:
                raise InvalidInput(f"Item {i}: quantity must be integer 1-{MAX_QUANTITY}")


@dataclass
class Quote:
    subtotal: Decimal
    zone: ShippingZone
    minimum: Decimal

    @property
    def shipping(self) -> Decimal:
        return self.zone.flat_charge

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.shipping

    @property
    def shortfall(self) -> Decimal:
        return max(Decimal("0"), self.minimum - self.subtotal)

    @property
    def can_checkout(self) -> bool:
        return self.shortfall == 0 and self.zone.zone_id != "unknown"

    def to_dict(self):
        return {
            "subtotal": float(self.subtotal),
            "zone": self.zone.to_dict(),
            "shipping": float(self.shipping),
            "total": float(self.total),
            "minimum_order": float(self.minimum),
            "shortfall": float(self.shortfall),
            "can_checkout": self.can_checkout,
        }


def quote(lines: List[CartLine], pincode: str, minimum) -> Quote:
    subtotal = sum((line.subtotal for line in lines), Decimal("0"))
    return Quote(subtotal=subtotal, zone=shipping_zone_for(pincode), minimum=Decimal(minimum))


class OrderGate:
    """Checks that must pass before checkout may touch the payment gateway."""

    def __init__(self, minimum_amount):
        self.minimum = Decimal(minimum_amount)

    def check(self, subtotal: Decimal, pincode: str, phone: str):
        if subtotal < self.minimum:
            shortfall = self.minimum - subtotal
            raise BelowMinimum(
                f"Minimum order amount is ₹{self.minimum}. Add ₹{shortfall} more to checkout.",
                shortfall=shortfall,
            )
        if not PINCODE_PATTERN.match((pincode or "").strip()):
            raise InvalidInput("Please enter a valid 6-digit pincode")
        if not LOCAL_PHONE_PATTERN.match(local_phone(phone)):
            raise InvalidInput("Please enter a valid 10-digit phone number")

    def quote(self, payload: OrderPayload) -> Quote:
        """Gate the payload and return the server-side price for it."""
        self.check(payload.subtotal, payload.pincode, payload.phone)
        return quote(payload.items, payload.pincode, self.minimum)
