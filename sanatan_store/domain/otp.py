"""
Per-phone OTP state.

A phone has at most one pending PhoneOTP challenge and one RateLimitRecord.
Timestamps are epoch seconds read from the server clock; the client never
supplies them. Both records serialise to flat string mappings so they can
live in Redis hashes.
"""
import math
import re
import secrets
from dataclasses import dataclass, field
from typing import Dict, Optional

# Indian mobile in E.164: +91 followed by 10 digits starting 6-9
PHONE_PATTERN = re.compile(r"^\+91[6-9][0-9]{9}$")
CODE_LENGTH = 6


def generate_code() -> str:
    """Uniform over 000000-999999, from the OS CSPRNG."""
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def derived_email(phone: str) -> str:
    """Placeholder email for phone-only identities, e.g. 919876543210@phone.auth"""
    digits = "".join(c for c in phone if c.isdigit())
    return f"{digits}@phone.auth"


def minutes_until(deadline: float, now: float) -> int:
    return max(1, math.ceil((deadline - now) / 60))


def _f(value: Optional[str]) -> Optional[float]:
    return float(value) if value not in (None, "") else None


def _s(value: Optional[float]) -> str:
    return "" if value is None else repr(float(value))


@dataclass
class PhoneOTP:
    phone: str
    code: str
    expires_at: float
    attempts: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_mapping(self) -> Dict[str, str]:
        return {
            "code": self.code,
            "expires_at": _s(self.expires_at),
            "attempts": str(self.attempts),
        }

    @classmethod
    def from_mapping(cls, phone: str, data: Dict[str, str]) -> Optional["PhoneOTP"]:
        if not data or "code" not in data:
            return None
        return cls(
            phone=phone,
            code=data["code"],
            expires_at=float(data["expires_at"]),
            attempts=int(data.get("attempts") or 0),
        )


@dataclass
class RateLimitRecord:
    phone: str
    send_attempts: int = 0
    send_window_start: Optional[float] = None
    verify_attempts: int = 0
    verify_window_start: Optional[float] = None
    locked_until: Optional[float] = None

    def is_locked(self, now: float) -> bool:
        return self.locked_until is not None and self.locked_until > now

    def lock(self, now: float, seconds: int):
        self.locked_until = now + seconds

    def reserve_send(self, now: float, max_sends: int, window_seconds: int) -> Optional[float]:
        """
        Count one OTP send. Returns None when allowed, otherwise the time the
        current window ends. The window starts at the first send and is reset
        once `window_seconds` have elapsed since then.
        """
        if self.send_window_start is None or now - self.send_window_start >= window_seconds:
            self.send_attempts = 0
            self.send_window_start = now
        if self.send_attempts >= max_sends:
            return self.send_window_start + window_seconds
        self.send_attempts += 1
        return None

    def record_verify_failure(self, now: float, window_seconds: int) -> int:
        if self.verify_window_start is None or now - self.verify_window_start >= window_seconds:
            self.verify_attempts = 0
            self.verify_window_start = now
        self.verify_attempts += 1
        return self.verify_attempts

    def verify_failures_in_window(self, now: float, window_seconds: int) -> int:
        if self.verify_window_start is None or now - self.verify_window_start >= window_seconds:
            return 0
        return self.verify_attempts

    def reset_after_success(self):
        self.send_attempts = 0
        self.send_window_start = None
        self.verify_attempts = 0
        self.verify_window_start = None
        self.locked_until = None

    def to_mapping(self) -> Dict[str, str]:
        return {
            "send_attempts": str(self.send_attempts),
            "send_window_start": _s(self.send_window_start),
            "verify_attempts": str(self.verify_attempts),
            "verify_window_start": _s(self.verify_window_start),
            "locked_until": _s(self.locked_until),
        }

    @classmethod
    def from_mapping(cls, phone: str, data: Dict[str, str]) -> "RateLimitRecord":
        if not data:
            return cls(phone=phone)
        return cls(
            phone=phone,
            send_attempts=int(data.get("send_attempts") or 0),
            send_window_start=_f(data.get("send_window_start")),
            verify_attempts=int(data.get("verify_attempts") or 0),
            verify_window_start=_f(data.get("verify_window_start")),
            locked_until=_f(data.get("locked_until")),
        )


@dataclass
class PhoneState:
    """Everything stored for one phone, read and written as a unit."""
    phone: str
    challenge: Optional[PhoneOTP] = None
    rate_limit: RateLimitRecord = field(default=None)

    def __post_init__(self):
        if self.rate_limit is None:
            self.rate_limit = RateLimitRecord(phone=self.phone)
