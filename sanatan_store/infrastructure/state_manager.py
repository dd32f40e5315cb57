import logging
import threading
from typing import Callable, Dict, Tuple, TypeVar

import redis
from redis.exceptions import RedisError, WatchError

from sanatan_store.core.errors import ServiceUnavailable
from sanatan_store.domain.otp import PhoneOTP, PhoneState, RateLimitRecord
from sanatan_store.interfaces.IPhoneStateStore import IPhoneStateStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Counters outlive every window they track (10 min send, 15 min lockout)
RATE_LIMIT_TTL_SECONDS = 24 * 3600
MAX_TRANSACTION_RETRIES = 10


def _challenge_key(phone: str) -> str:
    return f"otp:{phone}"


def _rate_limit_key(phone: str) -> str:
    return f"ratelimit:{phone}"


class RedisPhoneStateStore(IPhoneStateStore):
    """
    OTP challenges and rate-limit counters in Redis hashes.

    Every mutation runs inside WATCH/MULTI on both keys of the phone, so two
    requests racing on the same phone either see each other's write or retry.
    """

    def __init__(self, client):
        self.redis = client

    @classmethod
    def from_url(cls, url: str, timeout_seconds: float = 2):
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout_seconds,  # Fail fast if Redis is down
            socket_timeout=timeout_seconds,
        )
        return cls(client)

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except RedisError as e:
            logger.error("❌ Redis ping failed: %s", e)
            return False

    def load(self, phone: str) -> PhoneState:
        try:
            return self._read(self.redis, phone)
        except RedisError as e:
            self._handle_redis_error(e)

    def transact(self, phone: str, fn: Callable[[PhoneState], T]) -> T:
        ch_key, rl_key = _challenge_key(phone), _rate_limit_key(phone)
        try:
            with self.redis.pipeline() as pipe:
                for _ in range(MAX_TRANSACTION_RETRIES):
                    try:
                        pipe.watch(ch_key, rl_key)
                        # After WATCH the pipeline runs commands immediately
                        state = self._read(pipe, phone)
                        result = fn(state)
                        pipe.multi()
                        self._write(pipe, state)
                        pipe.execute()
                        return result
                    except WatchError:
                        logger.debug("Concurrent update on %s, retrying", rl_key)
                        continue
        except RedisError as e:
            self._handle_redis_error(e)
        logger.warning("Gave up after %s conflicting updates on %s", MAX_TRANSACTION_RETRIES, rl_key)
        raise ServiceUnavailable("Too many simultaneous requests. Please try again.")

    def _read(self, conn, phone: str) -> PhoneState:
        challenge = PhoneOTP.from_mapping(phone, conn.hgetall(_challenge_key(phone)))
        rate_limit = RateLimitRecord.from_mapping(phone, conn.hgetall(_rate_limit_key(phone)))
        return PhoneState(phone=phone, challenge=challenge, rate_limit=rate_limit)

    def _write(self, pipe, state: PhoneState):
        ch_key, rl_key = _challenge_key(state.phone), _rate_limit_key(state.phone)
        pipe.delete(ch_key)
        if state.challenge is not None:
            pipe.hset(ch_key, mapping=state.challenge.to_mapping())
            # Redis drops the hash shortly after the code stops being usable
            pipe.expireat(ch_key, int(state.challenge.expires_at) + 60)
        pipe.hset(rl_key, mapping=state.rate_limit.to_mapping())
        pipe.expire(rl_key, RATE_LIMIT_TTL_SECONDS)

    def _handle_redis_error(self, e):
        logger.error("❌ Redis Error: %s", e)
        raise ServiceUnavailable("Verification service is temporarily unavailable. Please try again.")


class InMemoryPhoneStateStore(IPhoneStateStore):
    """Process-local store for development and tests. Not shared between workers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._memory_store: Dict[str, Tuple[Dict[str, str], Dict[str, str]]] = {}

    def load(self, phone: str) -> PhoneState:
        with self._lock:
            return self._read(phone)

    def transact(self, phone: str, fn: Callable[[PhoneState], T]) -> T:
        with self._lock:
            state = self._read(phone)
            result = fn(state)
            self._memory_store[phone] = (
                state.challenge.to_mapping() if state.challenge is not None else {},
                state.rate_limit.to_mapping(),
            )
            return result

    def _read(self, phone: str) -> PhoneState:
        challenge_data, rate_limit_data = self._memory_store.get(phone, ({}, {}))
        return PhoneState(
            phone=phone,
            challenge=PhoneOTP.from_mapping(phone, dict(challenge_data)),
            rate_limit=RateLimitRecord.from_mapping(phone, dict(rate_limit_data)),
        )
