# ethree/infrastructure/repositories/user_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ethree.domain.exceptions import StorageError
from ethree.infrastructure.db.models import UserProfile


class UserRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> UserProfile | None:
        stmt = select(UserProfile).where(UserProfile.id == user_id)
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read user {user_id}") from exc
