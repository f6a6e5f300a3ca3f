# backend/tutorbook/repositories/user_repository.py
"""User repository."""

from typing import Optional

from sqlalchemy.orm import Session

from ..models.user import User
from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_by_external_id(self, external_id: str) -> Optional[User]:
        return self.find_one_by(external_id=external_id)
