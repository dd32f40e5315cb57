from abc import ABC, abstractmethod
from typing import Callable, TypeVar

from sanatan_store.domain.otp import PhoneState

T = TypeVar("T")

class IPhoneStateStore(ABC):
    """Durable, shared store for OTP challenges and rate-limit counters."""

    @abstractmethod
    def load(self, phone: str) -> PhoneState:
        pass

    @abstractmethod
    def transact(self, phone: str, fn: Callable[[PhoneState], T]) -> T:
        """
        Atomic read-modify-write for one phone. `fn` mutates the state in place
        (setting `challenge` to None deletes it) and its return value is passed
        back. Concurrent transactions on the same phone never interleave.
        """
        pass
