"""ORM models; importing this package registers every table on ``Base.metadata``."""

from .availability import TutorAvailabilitySlot
from .booking import Booking, BookingStatus, PaymentStatus
from .tutor import TutorProfile
from .user import User

__all__ = [
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "TutorAvailabilitySlot",
    "TutorProfile",
    "User",
]
