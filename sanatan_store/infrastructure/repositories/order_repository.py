import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError

from sanatan_store.core.errors import DuplicateOrder
from sanatan_store.domain.models import Order
from sanatan_store.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)


class SqlOrderRepository(IOrderRepository):

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def create_order(self, fields: Dict[str, Any]) -> Order:
        session = self.session_factory()
        try:
            new_order = Order(**fields)
            session.add(new_order)
            session.commit()
            session.refresh(new_order)
            return new_order
        except IntegrityError:
            session.rollback()
            key = fields.get("idempotency_key")
            if key and self._exists(session, key):
                raise DuplicateOrder(key)
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_order(self, order_id: str) -> Optional[Order]:
        session = self.session_factory()
        try:
            return session.get(Order, order_id)
        finally:
            session.close()

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        session = self.session_factory()
        try:
            return session.query(Order).filter(Order.idempotency_key == key).first()
        finally:
            session.close()

    def list_for_user(self, user_id: str, limit: int = 50) -> List[Order]:
        """Newest first."""
        session = self.session_factory()
        try:
            return (
                session.query(Order)
                .filter(Order.user_id == user_id)
                .order_by(desc(Order.created_at))
                .limit(limit)
                .all()
            )
        finally:
            session.close()

    def update_status(self, order_id: str, status: str) -> Optional[Order]:
        session = self.session_factory()
        try:
            order = session.get(Order, order_id)
            if order is None:
                return None
            order.status = status
            session.commit()
            session.refresh(order)
            return order
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _exists(session, key: str) -> bool:
        return session.query(Order.id).filter(Order.idempotency_key == key).first() is not None
