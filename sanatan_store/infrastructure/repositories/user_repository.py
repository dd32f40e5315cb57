from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import desc, or_
from sqlalchemy.exc import IntegrityError

from sanatan_store.core.errors import DuplicateIdentity
from sanatan_store.domain.models import User, UserRole
from sanatan_store.interfaces.IUserRepository import IUserRepository


def phone_variants(phone: str) -> List[str]:
    """+919876543210 and 919876543210 name the same identity."""
    bare = phone.lstrip("+")
    return [phone, bare, "+" + bare]


class SqlUserRepository(IUserRepository):

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def find_by_phone_or_email(self, phone: str, email: str) -> Optional[User]:
        session = self.session_factory()
        try:
            return (
                session.query(User)
                .filter(or_(User.phone.in_(phone_variants(phone)), User.email == email))
                .order_by(User.created_at)
                .first()
            )
        finally:
            session.close()

    def get_user(self, user_id: str) -> Optional[User]:
        session = self.session_factory()
        try:
            return session.get(User, user_id)
        finally:
            session.close()

    def create_user(self, phone: str, email: str, display_name: str) -> User:
        session = self.session_factory()
        try:
            user = User(
                phone=phone,
                email=email,
                display_name=(display_name or "")[:200],
                phone_confirmed=True,
                email_confirmed=True,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return user
        except IntegrityError:
            session.rollback()
            raise DuplicateIdentity(phone)
        finally:
            session.close()

    def touch_sign_in(self, user_id: str) -> None:
        session = self.session_factory()
        try:
            user = session.get(User, user_id)
            if user is not None:
                user.last_sign_in_at = datetime.now(timezone.utc)
                session.commit()
        finally:
            session.close()

    def has_role(self, user_id: str, role: str) -> bool:
        session = self.session_factory()
        try:
            return session.query(UserRole.id).filter_by(user_id=user_id, role=role).first() is not None
        finally:
            session.close()

    def add_role(self, user_id: str, role: str) -> bool:
        session = self.session_factory()
        try:
            if session.query(UserRole.id).filter_by(user_id=user_id, role=role).first():
                return False
            session.add(UserRole(user_id=user_id, role=role))
            session.commit()
            return True
        except IntegrityError:
            # Another admin added it first
            session.rollback()
            return False
        finally:
            session.close()

    def remove_role(self, user_id: str, role: str) -> bool:
        session = self.session_factory()
        try:
            deleted = session.query(UserRole).filter_by(user_id=user_id, role=role).delete()
            session.commit()
            return deleted > 0
        finally:
            session.close()

    def list_users_with_roles(self, limit: int = 100) -> List[Dict]:
        session = self.session_factory()
        try:
            users = session.query(User).order_by(desc(User.created_at)).limit(limit).all()
            roles = defaultdict(list)
            for user_id, role in session.query(UserRole.user_id, UserRole.role).all():
                roles[user_id].append(role)
            return [
                {
                    "id": u.id,
                    "email": u.email,
                    "phone": u.phone,
                    "display_name": u.display_name,
                    "created_at": u.created_at.isoformat() if u.created_at else None,
                    "last_sign_in_at": u.last_sign_in_at.isoformat() if u.last_sign_in_at else None,
                    "roles": roles.get(u.id, []),
                }
                for u in users
            ]
        finally:
            session.close()
