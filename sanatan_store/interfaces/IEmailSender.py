from abc import ABC, abstractmethod

class IEmailSender(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, html: str) -> str:
        """Returns the provider message id. Raises DeliveryFailed."""
        pass
