"""User repository - Database operations for accounts"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...database import commit_or_rollback
from ...errors import PersistenceError
from ...models import User
from ..listing import OwnerInfo


class UserRepository:
    """Repository for user database operations"""

    @staticmethod
    def get_by_firebase_uid(db: Session, firebase_uid: str) -> Optional[User]:
        return db.query(User).filter(User.firebase_uid == firebase_uid).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def create_user(db: Session, firebase_uid: str, email: str, full_name: str, role: str) -> User:
        user = User(firebase_uid=firebase_uid, email=email, full_name=full_name, role=role)
        db.add(user)
        commit_or_rollback(db, f"create user {email}")
        db.refresh(user)
        return user

    @staticmethod
    def owner_directory(db: Session) -> dict[int, OwnerInfo]:
        """Map of user id to display name/email, used by admin search."""
        try:
            rows = db.query(User.id, User.full_name, User.email).all()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load users") from e
        return {row.id: OwnerInfo(name=row.full_name or "", email=row.email or "") for row in rows}
