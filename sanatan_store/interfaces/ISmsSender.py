from abc import ABC, abstractmethod

class ISmsSender(ABC):
    @abstractmethod
    def send(self, to: str, body: str) -> str:
        """Send to an E.164 number; returns the provider message id. Raises DeliveryFailed."""
        pass
