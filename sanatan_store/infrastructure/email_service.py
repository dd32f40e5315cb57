import logging

import requests

from sanatan_store.core.errors import ConfigurationError, DeliveryFailed
from sanatan_store.interfaces.IEmailSender import IEmailSender

logger = logging.getLogger(__name__)


class ResendEmailSender(IEmailSender):
    """Transactional email through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str, base_url: str = "https://api.resend.com",
                 timeout_seconds: float = 5, session=None):
        if not api_key:
            raise ConfigurationError("RESEND_API_KEY not set")
        self.api_key = api_key
        self.from_address = from_address
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings):
        return cls(
            settings.RESEND_API_KEY,
            settings.EMAIL_FROM,
            base_url=settings.RESEND_BASE_URL,
            timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
        )

    def send(self, to: str, subject: str, html: str) -> str:
        payload = {"from": self.from_address, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            r = self.session.post(f"{self.base_url}/emails", json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("❌ Resend request failed: %s", e)
            raise DeliveryFailed("Failed to send email")

        try:
            data = r.json() if r.content else {}
        except ValueError:
            data = {}
        if not 200 <= r.status_code < 300:
            logger.error("❌ Resend error HTTP %s: %s", r.status_code, data.get("message") or r.text)
            raise DeliveryFailed("Failed to send email")

        logger.info("Email sent successfully: %s", data.get("id"))
        return data.get("id", "")
