"""
Phone OTP login.

request_otp and verify_otp do all their counter and challenge bookkeeping
inside a single store transaction per phone, then talk to the outside world
(SMS provider, identity store) after the transaction has committed.

Per phone:  NoChallenge -> Pending (request) -> Verified | Expired -> NoChallenge
                                             -> AttemptsExceeded -> Locked
Locked ends when locked_until passes.
"""
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sanatan_store.core.errors import (
    ChallengeNotFound,
    DuplicateIdentity,
    Expired,
    InvalidCode,
    InvalidInput,
    RateLimited,
    ServiceUnavailable,
)
from sanatan_store.core.security import TokenIssuer
from sanatan_store.domain.otp import (
    CODE_LENGTH,
    PHONE_PATTERN,
    PhoneOTP,
    PhoneState,
    derived_email,
    generate_code,
    minutes_until,
)
from sanatan_store.interfaces.IPhoneStateStore import IPhoneStateStore
from sanatan_store.interfaces.ISmsSender import ISmsSender
from sanatan_store.interfaces.IUserRepository import IUserRepository

logger = logging.getLogger(__name__)

OTP_MESSAGE = "Your Shree Sanatan Puja Path verification code is: {code}. Valid for {minutes} minutes."

# Outcomes of the verify transaction
LOCKED = "locked"
NOT_FOUND = "not_found"
EXPIRED = "expired"
WRONG = "wrong"
VERIFIED = "verified"


def hash_phone_number(phone: str) -> str:
    """Hash phone number for logs (one-way)"""
    return hashlib.sha256(phone.encode()).hexdigest()


def audit_log(action: str, phone: str, success: bool = True, user_id: Optional[str] = None,
              details: Optional[Dict[str, Any]] = None):
    audit_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "phone_hash": hash_phone_number(phone),
        "user_id": user_id,
        "success": success,
        "details": details or {},
    }
    logger.info("AUDIT: %s", json.dumps(audit_entry))


@dataclass
class OTPPolicy:
    ttl_seconds: int = 300
    max_sends: int = 3
    send_window_seconds: int = 600
    max_verify_attempts: int = 5
    lockout_seconds: int = 900

    @classmethod
    def from_settings(cls, settings):
        return cls(
            ttl_seconds=settings.OTP_TTL_SECONDS,
            max_sends=settings.OTP_MAX_SENDS,
            send_window_seconds=settings.OTP_SEND_WINDOW_SECONDS,
            max_verify_attempts=settings.OTP_MAX_VERIFY_ATTEMPTS,
            lockout_seconds=settings.OTP_LOCKOUT_SECONDS,
        )


@dataclass
class VerifyResult:
    user_id: str
    is_new_user: bool
    session_token: str

    def to_dict(self):
        return {
            "success": True,
            "userId": self.user_id,
            "isNewUser": self.is_new_user,
            "sessionToken": self.session_token,
        }


class OTPService:
    def __init__(self, store: IPhoneStateStore, users: IUserRepository,
                 sms_sender: Optional[ISmsSender], tokens: Optional[TokenIssuer],
                 policy: OTPPolicy = None, clock=time.time, code_generator=generate_code):
        self.store = store
        self.users = users
        self.sms_sender = sms_sender  # None when Twilio is not configured
        self.tokens = tokens
        self.policy = policy or OTPPolicy()
        self.clock = clock
        self.code_generator = code_generator

    # --- RequestOTP ---

    def request_otp(self, phone: str) -> None:
        phone = (phone or "").strip()
        if not phone:
            raise InvalidInput("Phone number is required")
        if not PHONE_PATTERN.match(phone):
            raise InvalidInput("Please enter a valid Indian phone number (+91XXXXXXXXXX)")
        if self.sms_sender is None:
            logger.error("❌ SMS provider not configured, refusing to issue OTP")
            raise ServiceUnavailable("SMS service is not configured")

        now = self.clock()
        code = self.code_generator()
        policy = self.policy

        def reserve(state: PhoneState):
            rl = state.rate_limit
            if rl.is_locked(now):
                return ("locked", rl.locked_until)
            window_end = rl.reserve_send(now, policy.max_sends, policy.send_window_seconds)
            if window_end is not None:
                return ("throttled", window_end)
            # Replaces any earlier code and its attempt counter
            state.challenge = PhoneOTP(phone=phone, code=code, expires_at=now + policy.ttl_seconds)
            return ("ok", None)

        outcome, until = self.store.transact(phone, reserve)
        if outcome == "locked":
            minutes = minutes_until(until, now)
            audit_log("otp_request", phone, success=False, details={"reason": "locked"})
            raise RateLimited(f"Too many failed attempts. Try again in {minutes} minutes.", retry_after_minutes=minutes)
        if outcome == "throttled":
            minutes = minutes_until(until, now)
            audit_log("otp_request", phone, success=False, details={"reason": "send_limit"})
            raise RateLimited(f"Too many OTP requests. Try again in {minutes} minutes.", retry_after_minutes=minutes)

        body = OTP_MESSAGE.format(code=code, minutes=policy.ttl_seconds // 60)
        try:
            self.sms_sender.send(phone, body)
        except Exception:
            audit_log("otp_request", phone, success=False, details={"reason": "delivery_failed"})
            raise
        audit_log("otp_request", phone)

    # --- VerifyOTP ---

    def verify_otp(self, phone: str, code: str, display_name: Optional[str] = None) -> VerifyResult:
        phone = (phone or "").strip()
        code = (code or "").strip()
        if not phone or not code:
            raise InvalidInput("Phone number and OTP are required")
        if not PHONE_PATTERN.match(phone):
            raise InvalidInput("Please enter a valid Indian phone number (+91XXXXXXXXXX)")
        if len(code) != CODE_LENGTH or not (code.isascii() and code.isdigit()):
            raise InvalidInput(f"OTP must be {CODE_LENGTH} digits")
        if self.tokens is None:
            raise ServiceUnavailable("Sign-in is not configured")

        now = self.clock()
        policy = self.policy

        def attempt(state: PhoneState):
            rl = state.rate_limit
            if rl.is_locked(now):
                return (LOCKED, rl.locked_until)
            challenge = state.challenge
            if challenge is None:
                return (NOT_FOUND, None)
            if challenge.is_expired(now):
                state.challenge = None
                return (EXPIRED, None)
            # Failures across re-sent codes count too, so a fresh code does not reset them
            failures = max(challenge.attempts,
                           rl.verify_failures_in_window(now, policy.lockout_seconds))
            if failures >= policy.max_verify_attempts:
                rl.lock(now, policy.lockout_seconds)
                state.challenge = None
                return (LOCKED, rl.locked_until)
            if not hmac.compare_digest(challenge.code, code):
                challenge.attempts += 1
                failures = max(challenge.attempts,
                               rl.record_verify_failure(now, policy.lockout_seconds))
                if failures >= policy.max_verify_attempts:
                    rl.lock(now, policy.lockout_seconds)
                    state.challenge = None
                    return (LOCKED, rl.locked_until)
                return (WRONG, policy.max_verify_attempts - failures)
            state.challenge = None
            rl.reset_after_success()
            return (VERIFIED, None)

        outcome, detail = self.store.transact(phone, attempt)

        if outcome == LOCKED:
            minutes = minutes_until(detail, now)
            audit_log("otp_verify", phone, success=False, details={"reason": "locked"})
            raise RateLimited(f"Too many failed attempts. Try again in {minutes} minutes.", retry_after_minutes=minutes)
        if outcome == NOT_FOUND:
            raise ChallengeNotFound("OTP expired or not found. Please request a new OTP.")
        if outcome == EXPIRED:
            audit_log("otp_verify", phone, success=False, details={"reason": "expired"})
            raise Expired("OTP has expired. Please request a new OTP.")
        if outcome == WRONG:
            audit_log("otp_verify", phone, success=False, details={"attempts_remaining": detail})
            raise InvalidCode(f"Invalid OTP. {detail} attempts remaining.", attempts_remaining=detail)

        result = self._sign_in(phone, display_name)
        audit_log("otp_verify", phone, user_id=result.user_id, details={"new_user": result.is_new_user})
        return result

    def _sign_in(self, phone: str, display_name: Optional[str]) -> VerifyResult:
        email = derived_email(phone)
        user = self.users.find_by_phone_or_email(phone, email)
        is_new = False
        if user is None:
            try:
                user = self.users.create_user(phone, email, display_name or "")
                is_new = True
                logger.info("Created identity %s", user.id)
            except DuplicateIdentity:
                # Lost a race with a parallel verify for the same phone
                user = self.users.find_by_phone_or_email(phone, email)
                if user is None:
                    raise
        self.users.touch_sign_in(user.id)
        return VerifyResult(user_id=user.id, is_new_user=is_new, session_token=self.tokens.issue(user.id))
