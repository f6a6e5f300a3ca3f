# backend/tutorbook/repositories/tutor_repository.py
"""Tutor profile repository."""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.tutor import TutorProfile
from .base_repository import BaseRepository


class TutorRepository(BaseRepository[TutorProfile]):
    def __init__(self, db: Session):
        super().__init__(db, TutorProfile)

    def get_by_user_id(self, user_id: str) -> Optional[TutorProfile]:
        return self.find_one_by(user_id=user_id)

    def get_by_email(self, email: str) -> Optional[TutorProfile]:
        return (
            self.db.query(TutorProfile)
            .filter(func.lower(TutorProfile.email) == email.strip().lower())
            .first()
        )
