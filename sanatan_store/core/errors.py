"""
Error taxonomy shared by the OTP and checkout flows.

Every error a caller can act on is a StoreError carrying the HTTP status
the API answers with and a short machine-readable code. Extra fields
(retry_after_minutes, attempts_remaining, shortfall, payment_id) are
rendered next to the message.
"""
from typing import Any, Dict, Optional


class StoreError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = {k: v for k, v in extra.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.extra}


class InvalidInput(StoreError):
    status_code = 400
    code = "invalid_input"


class BelowMinimum(StoreError):
    status_code = 400
    code = "below_minimum"

    def __init__(self, message: str, shortfall):
        super().__init__(message, shortfall=float(shortfall))
        self.shortfall = shortfall


class RateLimited(StoreError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str, retry_after_minutes: int):
        super().__init__(message, retry_after_minutes=retry_after_minutes)
        self.retry_after_minutes = retry_after_minutes


class ChallengeNotFound(StoreError):
    status_code = 400
    code = "otp_not_found"


class Expired(StoreError):
    status_code = 400
    code = "otp_expired"


class InvalidCode(StoreError):
    status_code = 400
    code = "invalid_code"

    def __init__(self, message: str, attempts_remaining: int):
        super().__init__(message, attempts_remaining=attempts_remaining)
        self.attempts_remaining = attempts_remaining


class VerificationFailed(StoreError):
    status_code = 400
    code = "verification_failed"

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "verified": False}


class AmountMismatch(StoreError):
    status_code = 400
    code = "amount_mismatch"

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "verified": False}


class AuthenticationRequired(StoreError):
    status_code = 401
    code = "authentication_required"


class Unauthorized(StoreError):
    status_code = 403
    code = "unauthorized"


class NotFound(StoreError):
    status_code = 404
    code = "not_found"


class DeliveryFailed(StoreError):
    status_code = 502
    code = "delivery_failed"


class GatewayError(StoreError):
    status_code = 502
    code = "gateway_error"


class PersistenceFailed(StoreError):
    """Order write failed. When money already moved this needs manual reconciliation."""
    status_code = 500
    code = "persistence_failed"

    def __init__(self, message: str, payment_id: Optional[str] = None):
        super().__init__(message, payment_id=payment_id)
        self.payment_id = payment_id

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.payment_id:
            body["verified"] = True
        return body


class ServiceUnavailable(StoreError):
    status_code = 503
    code = "service_unavailable"


class ConfigurationError(Exception):
    """A provider adapter was built without the credentials it needs."""


class DuplicateIdentity(Exception):
    """Unique phone/email violation while creating an identity."""


class DuplicateOrder(Exception):
    """An order with the same idempotency key already exists."""

    def __init__(self, idempotency_key: str):
        super().__init__(idempotency_key)
        self.idempotency_key = idempotency_key
