# backend/tutorbook/services/tutor_service.py
"""Tutor lookup shared by the availability, booking and checkout services."""

from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException
from ..models.tutor import TutorProfile
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from .base import BaseService, Clock


class TutorService(BaseService):
    """Resolve tutor profiles by id or by the signed-in account."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.tutor_repository = RepositoryFactory.create_tutor_repository(db)

    def find_tutor(self, tutor_id: str) -> Optional[TutorProfile]:
        return self.tutor_repository.get_by_id(tutor_id)

    def get_tutor(self, tutor_id: str) -> TutorProfile:
        tutor = self.find_tutor(tutor_id)
        if tutor is None:
            raise NotFoundException(
                "Tutor not found", code="TUTOR_NOT_FOUND", details={"tutor_id": tutor_id}
            )
        return tutor

    def find_tutor_for_user(self, user: User) -> Optional[TutorProfile]:
        """
        Profile owned by ``user``.

        Profiles created before the tutor first signed in are matched by email
        and linked to the account on that first match.
        """
        tutor = self.tutor_repository.get_by_user_id(user.id)
        if tutor is not None or not user.email:
            return tutor

        tutor = self.tutor_repository.get_by_email(user.email)
        if tutor is not None and tutor.user_id is None:
            with self.transaction():
                tutor.user_id = user.id
            self.log_operation("link_tutor_profile", tutor_id=tutor.id, user_id=user.id)
        elif tutor is not None and tutor.user_id != user.id:
            return None
        return tutor

    def get_tutor_for_user(self, user: User) -> TutorProfile:
        tutor = self.find_tutor_for_user(user)
        if tutor is None:
            raise NotFoundException(
                "Tutor profile not found for this account",
                code="TUTOR_PROFILE_NOT_FOUND",
                details={"user_id": user.id},
            )
        return tutor

    def tutor_user_id(self, tutor_id: str) -> Optional[str]:
        tutor = self.find_tutor(tutor_id)
        return tutor.user_id if tutor else None
