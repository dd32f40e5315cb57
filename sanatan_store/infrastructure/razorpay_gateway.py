import logging
from typing import Dict

import requests

from sanatan_store.core.errors import ConfigurationError, GatewayError
from sanatan_store.interfaces.IPaymentGateway import IPaymentGateway

logger = logging.getLogger(__name__)


class RazorpayGateway(IPaymentGateway):
    """Razorpay Orders API over HTTP basic auth."""

    def __init__(self, key_id: str, key_secret: str, base_url: str = "https://api.razorpay.com/v1",
                 timeout_seconds: float = 5, session=None):
        if not key_id or not key_secret:
            raise ConfigurationError("Razorpay credentials not configured")
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings):
        return cls(
            settings.RAZORPAY_KEY_ID,
            settings.RAZORPAY_KEY_SECRET,
            base_url=settings.RAZORPAY_BASE_URL,
            timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
        )

    def create_order(self, amount_minor: int, currency: str, receipt: str, notes: Dict[str, str]) -> Dict:
        payload = {"amount": amount_minor, "currency": currency, "receipt": receipt, "notes": notes}
        logger.info("Creating Razorpay order: amount=%s %s receipt=%s", amount_minor, currency, receipt)
        order = self._call("POST", "/orders", json=payload)
        logger.info("Razorpay order created: %s", order.get("id"))
        return order

    def fetch_order(self, gateway_order_id: str) -> Dict:
        return self._call("GET", f"/orders/{gateway_order_id}")

    def _call(self, method: str, path: str, **kwargs) -> Dict:
        try:
            r = self.session.request(
                method,
                f"{self.base_url}{path}",
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            logger.error("❌ Razorpay request failed: %s", e)
            raise GatewayError("Payment service unreachable. Please try again.")

        try:
            data = r.json() if r.content else {}
        except ValueError:
            logger.error("Invalid JSON response from Razorpay: %s", r.text)
            raise GatewayError("Unexpected response from payment service")

        if not 200 <= r.status_code < 300:
            description = (data.get("error") or {}).get("description")
            logger.error("Razorpay API error HTTP %s: %s", r.status_code, description)
            raise GatewayError(description or "Payment service error")
        return data
