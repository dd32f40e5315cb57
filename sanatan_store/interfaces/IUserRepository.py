from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sanatan_store.domain.models import User

class IUserRepository(ABC):
    @abstractmethod
    def find_by_phone_or_email(self, phone: str, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def create_user(self, phone: str, email: str, display_name: str) -> User:
        """Create a pre-verified identity. Raises DuplicateIdentity on a unique clash."""
        pass

    @abstractmethod
    def touch_sign_in(self, user_id: str) -> None:
        pass

    @abstractmethod
    def has_role(self, user_id: str, role: str) -> bool:
        pass

    @abstractmethod
    def add_role(self, user_id: str, role: str) -> bool:
        """Returns False when the role was already assigned."""
        pass

    @abstractmethod
    def remove_role(self, user_id: str, role: str) -> bool:
        pass

    @abstractmethod
    def list_users_with_roles(self, limit: int = 100) -> List[Dict]:
        pass
