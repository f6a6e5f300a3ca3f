# backend/tutorbook/models/user.py
"""
User model for the Tutorbook platform.

Identity lives with the external identity provider; this table keeps the
local facts the booking engine needs: who the caller is, whether they have
used their trial lesson, and whether they are allowed to book at all.
"""

from typing import Any

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func

from ..core.constants import DEFAULT_TIMEZONE
from ..core.ulid_helper import generate_ulid
from ..database import Base


class User(Base):
    """
    Local record of an authenticated caller.

    Attributes:
        id: Primary key (ULID)
        external_id: Subject id issued by the identity provider
        email: Email reported by the identity provider
        roles: Comma separated roles from the principal
        has_used_trial: Set once a trial lesson has been paid for
        is_suspended: Suspended users may not create bookings
        timezone: Preferred display timezone
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    external_id = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    roles = Column(String(255), nullable=False, default="")
    timezone = Column(String(64), nullable=False, default=DEFAULT_TIMEZONE)

    has_used_trial = Column(Boolean, nullable=False, default=False)
    trial_used_at = Column(DateTime(timezone=True), nullable=True)
    is_suspended = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if self.has_used_trial is None:
            self.has_used_trial = False
        if self.is_suspended is None:
            self.is_suspended = False
        if self.roles is None:
            self.roles = ""

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email}>"

    @property
    def trial_eligible(self) -> bool:
        return not bool(self.has_used_trial)
