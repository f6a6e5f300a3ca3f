# backend/tutorbook/models/tutor.py
"""Tutor profile: the bookable party, its rate and its weekly availability."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.constants import DEFAULT_TIMEZONE
from ..core.ulid_helper import generate_ulid
from ..database import Base


class TutorProfile(Base):
    """
    A tutor who can be booked.

    ``user_id`` links the profile to a signed-in account once the tutor has
    logged in; until then the profile is matched by ``email``.
    """

    __tablename__ = "tutor_profiles"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    user_id = Column(String(26), ForeignKey("users.id"), nullable=True, unique=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    bio = Column(Text, nullable=True)
    hourly_rate = Column(Numeric(10, 2), nullable=False)
    timezone = Column(String(64), nullable=False, default=DEFAULT_TIMEZONE)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", backref="tutor_profile", uselist=False)
    availability_slots = relationship(
        "TutorAvailabilitySlot",
        back_populates="tutor",
        cascade="all, delete-orphan",
        order_by="TutorAvailabilitySlot.start_time",
    )

    __table_args__ = (CheckConstraint("hourly_rate > 0", name="check_tutor_rate_positive"),)

    def __repr__(self) -> str:
        return f"<TutorProfile {self.id}: {self.name} @ {self.hourly_rate}/h>"
