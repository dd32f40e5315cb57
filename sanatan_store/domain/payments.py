import hashlib
import hmac
import re
import time
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class OnlinePayment:
    """What the Razorpay checkout widget hands back after a successful payment."""
    gateway_order_id: str
    payment_id: str
    signature: str

    @property
    def method(self) -> str:
        return "online"

    def idempotency_key(self, user_id: str) -> str:
        return f"payment:{self.payment_id}"


@dataclass(frozen=True)
class CashOnDelivery:
    client_key: Optional[str] = None

    @property
    def method(self) -> str:
        return "cod"

    def idempotency_key(self, user_id: str) -> Optional[str]:
        if not self.client_key:
            return None
        return f"cod:{user_id}:{self.client_key[:128]}"


PaymentMethod = Union[OnlinePayment, CashOnDelivery]


def compute_signature(gateway_order_id: str, payment_id: str, secret: str) -> str:
    message = f"{gateway_order_id}|{payment_id}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(gateway_order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    signature = (signature or "").strip()
    # compare_digest rejects non-ASCII str
    if not signature or not signature.isascii():
        return False
    expected = compute_signature(gateway_order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature)


def sanitize_receipt(receipt: Optional[str]) -> str:
    if receipt:
        cleaned = re.sub(r"[^a-zA-Z0-9_-]", "", str(receipt)[:40])
        if cleaned:
            return cleaned
    return f"receipt_{int(time.time() * 1000)}"
