# backend/tutorbook/models/availability.py
"""
Weekly availability for tutors.

Each row is one bookable UTC start time on one weekday. The full weekly map
is replaced wholesale, so rows are never edited in place.
"""

from sqlalchemy import Column, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base


class TutorAvailabilitySlot(Base):
    """
    One (weekday, HH:MM UTC) slot offered by a tutor.

    ``start_time`` stays a string so slot matching is an exact comparison of
    the same ``HH:MM`` text the API accepts and returns.
    """

    __tablename__ = "tutor_availability_slots"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    tutor_id = Column(
        String(26), ForeignKey("tutor_profiles.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week = Column(String(9), nullable=False)
    start_time = Column(String(5), nullable=False)

    tutor = relationship("TutorProfile", back_populates="availability_slots")

    __table_args__ = (
        UniqueConstraint(
            "tutor_id", "day_of_week", "start_time", name="uq_tutor_availability_day_time"
        ),
        Index("idx_tutor_availability_tutor_day", "tutor_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<TutorAvailabilitySlot {self.tutor_id} {self.day_of_week} {self.start_time}>"
