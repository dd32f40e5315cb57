import logging
import re

import requests
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from sanatan_store.core.errors import ConfigurationError, DeliveryFailed
from sanatan_store.interfaces.ISmsSender import ISmsSender

logger = logging.getLogger(__name__)


def to_e164(phone: str) -> str:
    """Normalise an Indian mobile number to +91XXXXXXXXXX."""
    digits = re.sub(r"[^0-9]", "", phone or "")
    if len(digits) == 10:
        digits = "91" + digits
    elif len(digits) == 11 and digits.startswith("0"):
        digits = "91" + digits[1:]
    return "+" + digits


class TwilioSmsSender(ISmsSender):
    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout_seconds: float = 5):
        if not (account_sid and auth_token and from_number):
            raise ConfigurationError("Twilio credentials missing (TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER)")
        self.from_number = from_number
        self.client = Client(
            account_sid,
            auth_token,
            http_client=TwilioHttpClient(timeout=timeout_seconds),
        )
        logger.info("✅ TwilioSmsSender: Twilio Client Initialized")

    @classmethod
    def from_settings(cls, settings):
        return cls(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_FROM_NUMBER,
            timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
        )

    def send(self, to: str, body: str) -> str:
        try:
            message = self.client.messages.create(from_=self.from_number, body=body, to=to)
        except TwilioRestException as e:
            logger.error("❌ Twilio error %s (status %s): %s", e.code, e.status, e.msg)
            raise DeliveryFailed("Failed to send SMS. Please try again.")
        except (TwilioException, requests.RequestException) as e:
            # Includes timeouts from the bounded http client
            logger.error("❌ Twilio request failed: %s", e)
            raise DeliveryFailed("Failed to send SMS. Please try again.")
        logger.info("SMS sent successfully: %s", message.sid)
        return message.sid
