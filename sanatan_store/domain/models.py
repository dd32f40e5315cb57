import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, UniqueConstraint
from sqlalchemy.sql import func

from sanatan_store.infrastructure.database import Base

ORDER_STATUSES = ("pending_cod", "pending", "confirmed", "shipped", "delivered", "cancelled")
TERMINAL_STATUSES = ("delivered", "cancelled")


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    phone = Column(String(20), unique=True, index=True, nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    display_name = Column(String(200), default="")
    phone_confirmed = Column(Boolean, default=False)
    email_confirmed = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_sign_in_at = Column(DateTime(timezone=True), nullable=True)


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    role = Column(String(20), nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), index=True, nullable=False)
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=True)
    shipping_address = Column(String(500), default="")
    pincode = Column(String(6), nullable=True)

    # Sanitised snapshot of the cart: [{id, name, price, quantity, image}]
    items = Column(JSON, nullable=False)

    shipping_charge = Column(Numeric(12, 2), default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), default="pending")  # see ORDER_STATUSES

    payment_method = Column(String(10), nullable=False)  # online, cod
    gateway_order_id = Column(String(64), nullable=True)
    payment_id = Column(String(64), nullable=True, index=True)
    idempotency_key = Column(String(200), unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "phone": self.phone,
            "shipping_address": self.shipping_address,
            "pincode": self.pincode,
            "items": self.items,
            "shipping_charge": float(self.shipping_charge or 0),
            "total_amount": float(self.total_amount),
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_id": self.payment_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
