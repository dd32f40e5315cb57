import logging
from typing import Dict, List

from sanatan_store.core.errors import InvalidInput, NotFound, Unauthorized
from sanatan_store.domain.models import ORDER_STATUSES, TERMINAL_STATUSES, Order
from sanatan_store.interfaces.IOrderRepository import IOrderRepository
from sanatan_store.interfaces.IUserRepository import IUserRepository

logger = logging.getLogger(__name__)

ROLES = ("admin", "user")


class AdminService:
    def __init__(self, users: IUserRepository, orders: IOrderRepository):
        self.users = users
        self.orders = orders

    def require_admin(self, principal_id: str):
        if not self.users.has_role(principal_id, "admin"):
            logger.warning("Non-admin %s tried an admin action", principal_id)
            raise Unauthorized("Unauthorized - Admin access required")

    def list_users(self, principal_id: str) -> List[Dict]:
        self.require_admin(principal_id)
        return self.users.list_users_with_roles(limit=100)

    def manage_role(self, principal_id: str, target_user_id: str, role: str, action: str) -> str:
        self.require_admin(principal_id)
        if not target_user_id or not role or not action:
            raise InvalidInput("Missing required fields: target_user_id, role, action")
        if role not in ROLES:
            raise InvalidInput(f"Unknown role: {role}")
        if target_user_id == principal_id and role == "admin" and action == "remove":
            raise InvalidInput("You cannot remove your own admin role")

        if action == "add":
            if self.users.get_user(target_user_id) is None:
                raise NotFound("User not found")
            if not self.users.add_role(target_user_id, role):
                return "Role already assigned"
            logger.info("Role %s added to %s by %s", role, target_user_id, principal_id)
            return "Role added successfully"
        if action == "remove":
            self.users.remove_role(target_user_id, role)
            logger.info("Role %s removed from %s by %s", role, target_user_id, principal_id)
            return "Role removed successfully"
        raise InvalidInput("Invalid action. Use 'add' or 'remove'")

    def update_order_status(self, principal_id: str, order_id: str, status: str) -> Order:
        self.require_admin(principal_id)
        if status not in ORDER_STATUSES:
            raise InvalidInput(f"Invalid status. Use one of: {', '.join(ORDER_STATUSES)}")
        order = self.orders.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.status in TERMINAL_STATUSES and order.status != status:
            raise InvalidInput(f"Order is already {order.status}")
        updated = self.orders.update_status(order_id, status)
        logger.info("Order %s status %s -> %s by %s", order_id, order.status, status, principal_id)
        return updated
