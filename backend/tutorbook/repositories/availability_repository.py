# backend/tutorbook/repositories/availability_repository.py
"""
Availability repository.

Weekly availability is stored one row per (weekday, HH:MM) and always
replaced as a whole set.
"""

from typing import Dict, List, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import TutorAvailabilitySlot
from .base_repository import BaseRepository


class AvailabilityRepository(BaseRepository[TutorAvailabilitySlot]):
    def __init__(self, db: Session):
        super().__init__(db, TutorAvailabilitySlot)

    def get_weekly_map(self, tutor_id: str) -> Dict[str, List[str]]:
        """Slots grouped by weekday; days without slots are absent."""
        try:
            rows = (
                self.db.query(TutorAvailabilitySlot.day_of_week, TutorAvailabilitySlot.start_time)
                .filter(TutorAvailabilitySlot.tutor_id == tutor_id)
                .order_by(TutorAvailabilitySlot.day_of_week, TutorAvailabilitySlot.start_time)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading availability for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to load availability: {str(e)}") from e

        weekly: Dict[str, List[str]] = {}
        for day, start_time in rows:
            weekly.setdefault(day, []).append(start_time)
        return weekly

    def replace_weekly_map(self, tutor_id: str, weekly: Mapping[str, List[str]]) -> int:
        """
        Delete every slot for the tutor and insert ``weekly``.

        Does NOT commit. Returns the number of slots written.
        """
        try:
            self.db.query(TutorAvailabilitySlot).filter(
                TutorAvailabilitySlot.tutor_id == tutor_id
            ).delete(synchronize_session=False)
            slots = [
                TutorAvailabilitySlot(tutor_id=tutor_id, day_of_week=day, start_time=start_time)
                for day, times in weekly.items()
                for start_time in times
            ]
            self.db.add_all(slots)
            self.db.flush()
            return len(slots)
        except SQLAlchemyError as e:
            self.logger.error(f"Error replacing availability for tutor {tutor_id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to save availability: {str(e)}") from e
