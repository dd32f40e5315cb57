from abc import ABC, abstractmethod
from typing import Dict

class IPaymentGateway(ABC):
    key_id: str

    @abstractmethod
    def create_order(self, amount_minor: int, currency: str, receipt: str, notes: Dict[str, str]) -> Dict:
        """Returns the gateway's order record ({"id", "amount", "currency", ...}). Raises GatewayError."""
        pass

    @abstractmethod
    def fetch_order(self, gateway_order_id: str) -> Dict:
        """Returns the gateway's own record of an order. Raises GatewayError."""
        pass
