from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sanatan_store.domain.models import Order

class IOrderRepository(ABC):
    @abstractmethod
    def create_order(self, fields: Dict[str, Any]) -> Order:
        """Insert one order. Raises DuplicateOrder when its idempotency_key already exists."""
        pass

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        pass

    @abstractmethod
    def list_for_user(self, user_id: str, limit: int = 50) -> List[Order]:
        pass

    @abstractmethod
    def update_status(self, order_id: str, status: str) -> Optional[Order]:
        pass
